from urllib.parse import urlencode

DEFAULT_QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"
DEFAULT_QR_SIZE = 250


def qr_code_url(
    data: str,
    base_url: str = DEFAULT_QR_SERVICE_URL,
    size: int = DEFAULT_QR_SIZE,
) -> str:
    """URL of a PNG rendering of data from the external QR image service."""
    query = urlencode({"size": f"{size}x{size}", "data": data})
    return f"{base_url}?{query}"
