INITIAL_VALUE = 0xFFFF
POLYNOMIAL = 0x1021
MASK = 0xFFFF


def crc16(text: str) -> str:
    """CRC-16/CCITT-FALSE of text, as 4 uppercase hex digits.

    Operates on character codes; inputs are expected to be ASCII.
    """
    crc = INITIAL_VALUE
    for char in text:
        crc = (crc ^ (ord(char) << 8)) & MASK
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ POLYNOMIAL) & MASK
            else:
                crc = (crc << 1) & MASK
    return f"{crc & MASK:04X}"
