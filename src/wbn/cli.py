from __future__ import annotations

import argparse
import asyncio
import getpass
from pathlib import Path

from .bundle import Bundle, BundleBuilder
from .config import WBN_FORMAT_VERSION, WBN_INTEGRITY_BLOCK_VERSION
from .integrity import (
    IntegrityBlockSigner,
    ParsedKeySigningStrategy,
    WebBundleId,
    get_signed_web_bundle_id,
    load_private_key,
)
from .integrity.integrity_block import has_integrity_block, parse_integrity_block


def _read_passphrase() -> str:
    return getpass.getpass("Passphrase for the private key: ")


def _load_key(path: str):
    return load_private_key(Path(path).read_bytes(), _read_passphrase)


def cmd_gen_bundle(args: argparse.Namespace) -> int:
    builder = BundleBuilder(args.format_version)
    if args.primary_url:
        builder.set_primary_url(args.primary_url)
    builder.add_files_recursively(args.base_url, args.dir)
    buf = builder.finalize()
    Path(args.output).write_bytes(buf)
    print(f"wrote {args.output} ({len(buf)} bytes)")
    return 0


def cmd_dump(args: argparse.Namespace) -> int:
    buf = Path(args.input).read_bytes()
    if has_integrity_block(buf):
        block, buf = parse_integrity_block(buf)
        print(f"Integrity block: {block.version.value}, {len(block.signature_stack)} signature(s)")
        if block.version.has_attributes:
            print(f"Web Bundle ID: {block.web_bundle_id}")
    print(Bundle(buf, strict=args.strict))
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    strategies = [ParsedKeySigningStrategy(_load_key(p)) for p in args.private_key]
    signer = IntegrityBlockSigner(
        Path(args.input).read_bytes(),
        strategies,
        web_bundle_id=args.web_bundle_id,
        version=args.version,
    )
    signed = asyncio.run(signer.sign())
    Path(args.output).write_bytes(signed.signed_web_bundle)
    print(f"wrote {args.output} ({len(signed.signed_web_bundle)} bytes)")
    return 0


def cmd_dump_id(args: argparse.Namespace) -> int:
    if args.private_key:
        print(WebBundleId(_load_key(args.private_key)))
    else:
        print(get_signed_web_bundle_id(Path(args.input).read_bytes()))
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser("wbn")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_gen = sub.add_parser("gen-bundle")
    p_gen.add_argument("--dir", required=True)
    p_gen.add_argument("--base-url", dest="base_url", required=True)
    p_gen.add_argument("--primary-url", dest="primary_url")
    p_gen.add_argument("--format-version", dest="format_version", choices=["b1", "b2"], default=WBN_FORMAT_VERSION)
    p_gen.add_argument("--output", default="out.wbn")
    p_gen.set_defaults(func=cmd_gen_bundle)

    p_dump = sub.add_parser("dump")
    p_dump.add_argument("--input", required=True)
    p_dump.add_argument("--strict", action="store_true")
    p_dump.set_defaults(func=cmd_dump)

    p_sign = sub.add_parser("sign")
    p_sign.add_argument("--input", required=True)
    p_sign.add_argument("--output", default="signed.swbn")
    p_sign.add_argument("--private-key", dest="private_key", action="append", required=True)
    p_sign.add_argument("--web-bundle-id", dest="web_bundle_id")
    p_sign.add_argument("--version", choices=["v1", "v2"], default=WBN_INTEGRITY_BLOCK_VERSION)
    p_sign.set_defaults(func=cmd_sign)

    p_id = sub.add_parser("dump-id")
    src = p_id.add_mutually_exclusive_group(required=True)
    src.add_argument("--private-key", dest="private_key")
    src.add_argument("--input")
    p_id.set_defaults(func=cmd_dump_id)

    args = p.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
