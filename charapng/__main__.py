"""
charapng
========

Extract character card JSON embedded in PNG files.

License:
    Copyright (c) 2023 Eta

    This software is provided 'as-is', without any express or implied
    warranty. In no event will the authors be held liable for any damages
    arising from the use of this software.

    Permission is granted to anyone to use this software for any purpose,
    including commercial applications, and to alter it and redistribute it
    freely, subject to the following restrictions:

    1. The origin of this software must not be misrepresented; you must not
       claim that you wrote the original software. If you use this software
       in a product, an acknowledgment in the product documentation would be
       appreciated but is not required.
    2. Altered source versions must be plainly marked as such, and must not be
       misrepresented as being the original software.
    3. This notice may not be removed or altered from any source distribution.
"""
import argparse
import json
import logging
import sys
import textwrap

import charapng


def main(argv=None):
    try:
        _main(argv)
    except KeyboardInterrupt:
        sys.exit(-1073741510 if sys.platform == "win32" else 2)


def _main(argv):
    parser = argparse.ArgumentParser(
        prog="charapng" if __name__ == "__main__" else None,
        description="read a character card embedded in a PNG file",
        epilog=textwrap.dedent(r"""
            examples:
              (printing to stdout)
              %(prog)s avatar.png

              (saving to a file)
              %(prog)s avatar.png card.json

              (redirecting stdin and stdout)
              %(prog)s - < avatar.png > card.json

              (troubleshooting a file that yields no card)
              %(prog)s -v --inspect avatar.png
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "file",
        type=argparse.FileType(mode="rb"),
        help="PNG file to read, or - for stdin",
    )
    parser.add_argument(
        "outfile",
        nargs="?",
        type=argparse.FileType(mode="w", encoding="utf-8"),
        default=sys.stdout,
        help="output file path, or - for stdout (default: -)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        dest="quiet",
        action="store_true",
        help="don't print errors",
    )
    parser.add_argument(
        "-c",
        "--compact",
        dest="pretty_print",
        action="store_false",
        help="don't pretty-print decoded JSON",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        action="store_true",
        help="log each extraction step to stderr",
    )
    parser.add_argument(
        "--v2-first",
        dest="keywords",
        action="store_const",
        const=("chara", "ccv3"),
        default=charapng.CARD_KEYWORDS,
        help="prefer V2 (chara) cards over V3 (ccv3) cards",
    )
    parser.add_argument(
        "--no-exif",
        dest="use_exif",
        action="store_false",
        help="don't search eXIf chunks",
    )
    parser.add_argument(
        "--no-heuristics",
        dest="use_heuristics",
        action="store_false",
        help="don't search the whole file for plain card JSON",
    )
    parser.add_argument(
        "--inspect",
        dest="inspect",
        action="store_true",
        help="print a report of what the file contains instead of the card",
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

    options = charapng.ExtractOptions(
        keywords=args.keywords,
        use_exif=args.use_exif,
        use_heuristics=args.use_heuristics,
    )
    try:
        data = args.file.read()
    except OSError as e:
        if not args.quiet:
            print("Error:", e, file=sys.stderr)
        sys.exit(100)
    finally:
        if args.file is not sys.stdin.buffer:
            args.file.close()

    indent = 2 if args.pretty_print else None
    if not args.inspect and not charapng.has_png_signature(data):
        if not args.quiet:
            print(
                "Error: not a valid PNG file: incorrect PNG signature",
                file=sys.stderr,
            )
        sys.exit(100)
    if args.inspect:
        output = json.dumps(charapng.inspect(data, options), indent=indent)
    else:
        card = charapng.extract_card(data, options)
        if card is None:
            if not args.quiet:
                print(
                    "The file does not contain valid character data.",
                    file=sys.stderr,
                )
            sys.exit(101)
        output = json.dumps(card.to_dict(), indent=indent, ensure_ascii=False)

    try:
        args.outfile.write(output)
        args.outfile.flush()
    except OSError:
        if not args.quiet:
            print("Error: failed to write to output stream", file=sys.stderr)
        sys.exit(102)

    if args.outfile is not sys.stdout:
        args.outfile.close()


if __name__ == "__main__":
    main()
