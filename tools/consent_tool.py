#!/usr/bin/env python3
"""
consent_tool.py - Inspect, build and modify vendor consent strings

Usage:
  # Decode a consent string to YAML (or JSON)
  python consent_tool.py decode BOEFEAyOEFEAyAHABDENAI4AAAB9vABAASA
  python consent_tool.py decode consent.txt -j -o record.json

  # Encode a YAML/JSON record document
  python consent_tool.py encode record.yaml
  python consent_tool.py encode record.yaml --encoding auto -q

  # Decode, change, re-encode
  python consent_tool.py modify BOEFEAyOEFEAyAHABDENAI4AAAB9vABAASA \\
      --remove 10 --last-updated 2018-05-11T12:00:00Z

  # Sizes and header layout
  python consent_tool.py info BOEFEAyOEFEAyAHABDENAI4AAAB9vABAASA
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from consent_envelope import decode, encode
from consent_errors import ConsentStringError, MalformedInput
from consent_string import (
    V1_HEADER_BITS, layout_offsets, parse_timestamp, record_from_dict,
    record_to_dict,
)
from scalar_codecs import VendorEncoding
from vendor_consent import smallest_encoding


ENCODING_CHOICES = ['bitfield', 'range', 'auto']


def read_consent_string(input_data: str) -> str:
    """Accept a consent string inline or a file containing one."""
    path = Path(input_data)
    try:
        if path.is_file():
            return path.read_text().strip()
    except OSError:
        # Long bitfield strings exceed the file name limit
        pass
    return input_data.strip()


def resolve_encoding(name: Optional[str], record) -> Optional[VendorEncoding]:
    """Map a CLI encoding choice to a VendorEncoding; None keeps the record's."""
    if name is None or name == 'keep':
        return None
    if name == 'auto':
        return smallest_encoding(record.vendor_consent)
    return VendorEncoding[name.upper()]


def dump_record(record, as_json: bool = False) -> str:
    doc = record_to_dict(record)
    if as_json:
        return json.dumps(doc, indent=2)
    return yaml.safe_dump(doc, default_flow_style=None, sort_keys=False)


def load_record(path: Path):
    content = path.read_text()
    try:
        if path.suffix == '.json':
            doc = json.loads(content)
        else:
            doc = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise MalformedInput(f"Cannot parse {path}: {e}") from e
    if not isinstance(doc, dict):
        raise MalformedInput(f"{path} does not contain a consent record mapping")
    return record_from_dict(doc)


def get_info(text: str) -> dict:
    """Summary of a consent string."""
    record = decode(text)
    consent = record.vendor_consent
    return {
        'version': record.version,
        'encoding': record.vendor_encoding.name.lower(),
        'max_vendor_id': record.max_vendor_id,
        'consented_vendors': len(consent.consented_ids()),
        'bitfield_payload_bits': consent.payload_bits(VendorEncoding.BITFIELD),
        'range_payload_bits': consent.payload_bits(VendorEncoding.RANGE),
        'smallest_encoding': smallest_encoding(consent).name.lower(),
        'header_bits': V1_HEADER_BITS,
        'string_length': len(text),
    }


def write_output(content: str, output: Optional[Path], quiet: bool = False) -> None:
    if output:
        output.write_text(content if content.endswith('\n') else content + '\n')
        if not quiet:
            print(f"Written to {output}", file=sys.stderr)
    else:
        print(content.rstrip('\n'))


def cmd_decode(args) -> None:
    record = decode(read_consent_string(args.input))
    write_output(dump_record(record, args.json), args.output)


def cmd_encode(args) -> None:
    if not args.input.exists():
        raise ConsentStringError(f"{args.input} not found")
    record = load_record(args.input)
    encoding = resolve_encoding(args.encoding, record)
    text = encode(record, encoding)
    if not args.quiet:
        used = encoding if encoding is not None else record.vendor_encoding
        print(f"# Encoding: {used.name.lower()}", file=sys.stderr)
        print(f"# Length: {len(text)} chars", file=sys.stderr)
    write_output(text, args.output, args.quiet)


def cmd_modify(args) -> None:
    record = decode(read_consent_string(args.input))
    for vendor_id in args.add:
        record.vendor_consent.insert(vendor_id)
    for vendor_id in args.remove:
        record.vendor_consent.remove(vendor_id)
    if args.last_updated == 'now':
        record.last_updated = datetime.now(timezone.utc)
    elif args.last_updated:
        record.last_updated = parse_timestamp(args.last_updated)

    encoding = resolve_encoding(args.encoding, record)
    text = encode(record, encoding)
    if not args.quiet:
        print(f"# Added: {args.add or '-'}  Removed: {args.remove or '-'}", file=sys.stderr)
    write_output(text, args.output, args.quiet)


def cmd_info(args) -> None:
    text = read_consent_string(args.input)
    stats = get_info(text)
    print(f"Version: {stats['version']}")
    print(f"Encoding: {stats['encoding']} (smallest: {stats['smallest_encoding']})")
    print(f"Max vendor id: {stats['max_vendor_id']}")
    print(f"Consented vendors: {stats['consented_vendors']}")
    print(f"Bitfield payload: {stats['bitfield_payload_bits']} bits")
    print(f"Range payload: {stats['range_payload_bits']} bits")
    print(f"String length: {stats['string_length']} chars")
    print("Header layout:")
    for name, offset, bits in layout_offsets():
        print(f"  {offset:4d}  {name:<20} {bits:2d} bits")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Inspect, build and modify vendor consent strings'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    dec = subparsers.add_parser('decode', help='Decode consent string to YAML')
    dec.add_argument('input', help='Consent string or file containing one')
    dec.add_argument('-o', '--output', type=Path, help='Output file (default: stdout)')
    dec.add_argument('-j', '--json', action='store_true', help='Output as JSON')

    enc = subparsers.add_parser('encode', help='Encode a record document')
    enc.add_argument('input', type=Path, help='Record file (YAML/JSON)')
    enc.add_argument('-e', '--encoding', choices=ENCODING_CHOICES,
                     help="Vendor payload encoding (default: the record's)")
    enc.add_argument('-o', '--output', type=Path, help='Output file (default: stdout)')
    enc.add_argument('-q', '--quiet', action='store_true', help='Only output the consent string')

    mod = subparsers.add_parser('modify', help='Change vendor consent and re-encode')
    mod.add_argument('input', help='Consent string or file containing one')
    mod.add_argument('--add', type=int, action='append', default=[], metavar='ID',
                     help='Grant consent to vendor ID (repeatable)')
    mod.add_argument('--remove', type=int, action='append', default=[], metavar='ID',
                     help='Withdraw consent from vendor ID (repeatable)')
    mod.add_argument('--last-updated', metavar='ISO', help="New last_updated time or 'now'")
    mod.add_argument('-e', '--encoding', choices=['keep'] + ENCODING_CHOICES, default='keep',
                     help='Vendor payload encoding (default: keep)')
    mod.add_argument('-o', '--output', type=Path, help='Output file (default: stdout)')
    mod.add_argument('-q', '--quiet', action='store_true', help='Only output the consent string')

    inf = subparsers.add_parser('info', help='Show info about a consent string')
    inf.add_argument('input', help='Consent string or file containing one')

    args = parser.parse_args(argv)

    handlers = {
        'decode': cmd_decode,
        'encode': cmd_encode,
        'modify': cmd_modify,
        'info': cmd_info,
    }
    try:
        handlers[args.command](args)
    except ConsentStringError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
