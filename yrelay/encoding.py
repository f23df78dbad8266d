from .errors import DecodeError

# lib0 variable-length integers: 7 bits per byte, high bit set while more bytes follow
CONTINUE_BIT = 0x80
PAYLOAD_MASK = 0x7F
MAX_VARUINT_BYTES = 8  # lib0 numbers stay below 2**53


def write_var_uint(buf: bytearray, value: int) -> None:
    if not isinstance(value, int) or value < 0:
        raise ValueError("varuint must be a non-negative int")
    while value > PAYLOAD_MASK:
        buf.append(CONTINUE_BIT | (value & PAYLOAD_MASK))
        value >>= 7
    buf.append(value)


def write_var_bytes(buf: bytearray, data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("write_var_bytes expects bytes")
    write_var_uint(buf, len(data))
    buf.extend(data)


def write_var_string(buf: bytearray, text: str) -> None:
    write_var_bytes(buf, text.encode("utf-8"))


class Decoder:
    """Sequential reader over a bytes buffer."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.pos = 0

    def has_content(self) -> bool:
        return self.pos < len(self.data)

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read_var_uint(self) -> int:
        value = 0
        shift = 0
        for _ in range(MAX_VARUINT_BYTES):
            if self.pos >= len(self.data):
                raise DecodeError("unexpected end of buffer in varuint")
            byte = self.data[self.pos]
            self.pos += 1
            value |= (byte & PAYLOAD_MASK) << shift
            if byte < CONTINUE_BIT:
                return value
            shift += 7
        raise DecodeError("varuint too long")

    def read_var_bytes(self) -> bytes:
        length = self.read_var_uint()
        if length > self.remaining():
            raise DecodeError(
                f"length prefix {length} exceeds remaining {self.remaining()} bytes"
            )
        start = self.pos
        self.pos += length
        return self.data[start : self.pos]

    def read_var_string(self) -> str:
        raw = self.read_var_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid utf-8 string: {exc}") from exc

