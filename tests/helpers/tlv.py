def parse_fields(payload: str) -> list[tuple[str, str]]:
    """
    Split a BR Code payload into (id, value) pairs.

    Reads the two-digit id and two-digit length of each field in turn, so it
    works both on full payloads and on composite field values.
    """
    fields = []
    pos = 0
    while pos < len(payload):
        field_id = payload[pos:pos + 2]
        length = int(payload[pos + 2:pos + 4])
        value = payload[pos + 4:pos + 4 + length]
        assert len(value) == length, f"Truncated field {field_id!r} at {pos}"
        fields.append((field_id, value))
        pos += 4 + length
    return fields


def field_value(payload: str, field_id: str) -> str:
    for fid, value in parse_fields(payload):
        if fid == field_id:
            return value
    raise AssertionError(f"Field {field_id!r} not found in {payload!r}")
