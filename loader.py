import logging, re

logger = logging.getLogger(__name__)

HEX_WORD = re.compile("[0-9A-Fa-f]{4}")

class HexImageError(ValueError):
    pass

def parse_hex_image(text):
    """
    Decode a program image written as whitespace separated words of exactly
    four hex digits, e.g. "600A 6105 8014". Any bad word rejects the whole
    image.
    """
    code = bytearray()
    for number, word in enumerate(text.split(), 1):
        if len(word) != 4:
            raise HexImageError(f"Word {number} has unexpected length: {word!r}")
        if not HEX_WORD.fullmatch(word):
            raise HexImageError(f"Word {number} is not hexadecimal: {word!r}")
        code += bytes.fromhex(word)
    return bytes(code)

def format_hex_image(code, per_line=8):
    if len(code) % 2:
        code = bytes(code) + b"\x00"
    words = [code[i:i+2].hex().upper() for i in range(0, len(code), 2)]
    lines = [" ".join(words[i:i+per_line]) for i in range(0, len(words), per_line)]
    return "\n".join(lines) + ("\n" if lines else "")

def loadfile(filename, binary=False):
    if binary:
        with open(filename, "rb") as f:
            code = f.read()
    else:
        with open(filename) as f:
            code = parse_hex_image(f.read())
    logger.debug(f"Read {len(code)} bytes from {filename}")
    return code
