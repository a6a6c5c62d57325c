#!/usr/bin/python3

import argparse, sys

from loader import parse_hex_image, format_hex_image, HexImageError

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Convert CHIP-8 programs between hex words and .ch8 binaries")
    parser.add_argument("-d", "--decompile", action="store_true",
                        help="Turn a .ch8 binary back into hex words")
    parser.add_argument("input",
                        help="File to read")
    parser.add_argument("output",
                        help="File to put output in")
    return parser.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)

    if args.decompile:
        print("Reading binary...")
        with open(args.input, "rb") as f:
            code = f.read()
        print("Writing hex words...")
        with open(args.output, "w") as f:
            f.write(format_hex_image(code))
    else:
        output = args.output + ("" if "." in args.output.split("/")[-1] else ".ch8")
        print("Converting input...")
        with open(args.input) as f:
            try:
                code = parse_hex_image(f.read())
            except HexImageError as e:
                sys.stderr.write(f"Bad program image: {e}\n")
                return 1
        print("Writing to file...")
        with open(output, "wb") as f:
            f.write(code)
    print("Done!")
    return 0

if __name__ == "__main__":
    sys.exit(main())
