# corpuscleaner mappings: encodings and line-merge tables.

# Staging and final corpus files are written as UTF-16 with a BOM.
TARGET_ENCODING = "utf-16"

# Line hashes are computed on the BOM-less UTF-16 bytes of the line.
HASH_ENCODING = "utf-16-le"

# Windows code pages without a plain "cpNNN" Python codec
CODEPAGE_MAP = {
    1200: "utf-16",
    1201: "utf-16-be",
    12000: "utf-32",
    12001: "utf-32-be",
    20127: "ascii",
    20932: "euc_jp",
    20936: "gb2312",
    28591: "latin-1",
    28592: "iso8859_2",
    28605: "iso8859_15",
    50220: "iso2022_jp",
    51949: "euc_kr",
    54936: "gb18030",
    65000: "utf-7",
    # BOM is optional on read
    65001: "utf-8-sig",
}

# Titles that end with a dot but never end a sentence
ABBREVIATION_TITLES = (" Mr.", " Mrs.", " Ms.")

# Prefixes of hexadecimal code point expressions, e.g. "U+3042" or "0x3042"
HEX_CODEPOINT_PREFIXES = ("U+", "u+", "0x", "0X", "\\u", "\\U")
