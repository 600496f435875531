"""Command line interface for the NF-e invoice ingestion pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from .config import Settings
from .core.errors import InvoiceError
from .core.models import ParsedInvoice
from .core.pipeline import InvoicePipeline


LOGGER = logging.getLogger(__name__)

SOURCE_KINDS = ["auto", "url", "qr", "xml", "html", "pdf"]


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def load_settings(config_path: str) -> Settings:
    return Settings.load(config_path)


def _detect_kind(source: str) -> str:
    suffix = Path(source).suffix.lower()
    if suffix == ".xml":
        return "xml"
    if suffix in {".html", ".htm"}:
        return "html"
    if suffix == ".pdf":
        return "pdf"
    return "auto"


def parse_source(pipeline: InvoicePipeline, source: str, kind: str, force_refresh: bool = False) -> ParsedInvoice:
    if kind == "auto":
        kind = _detect_kind(source)
    if kind == "pdf":
        return pipeline.parse_pdf(Path(source).read_bytes())
    if kind in {"xml", "html"}:
        return pipeline.parse(Path(source).read_text(encoding="utf-8"), kind=kind)
    return pipeline.parse(source, kind=kind, force_refresh=force_refresh)


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def command_parse(args: argparse.Namespace) -> None:
    pipeline = InvoicePipeline(load_settings(args.config))
    parsed = parse_source(pipeline, args.source, args.kind, args.force_refresh)
    _print_json(parsed.to_dict())


def command_ingest(args: argparse.Namespace) -> None:
    pipeline = InvoicePipeline(load_settings(args.config))
    parsed = parse_source(pipeline, args.source, args.kind, args.force_refresh)
    result = pipeline.ingest(args.user, parsed, custom_category=args.custom_category)

    invoice = result.invoice
    print("Nota fiscal registrada")
    print(f"ID: {invoice.id}")
    print(f"Chave: {invoice.invoice_key}")
    print(f"Emitente: {invoice.merchant_name} ({invoice.merchant_cnpj})")
    print(f"Categoria: {invoice.category.value}")
    print(f"Itens: {len(result.items)}")
    print(f"Total: R$ {invoice.total_amount:.2f}")


def command_delete(args: argparse.Namespace) -> None:
    pipeline = InvoicePipeline(load_settings(args.config))
    pipeline.delete_invoice(args.invoice_id, args.user)
    print(f"Nota fiscal {args.invoice_id} removida")


def command_show(args: argparse.Namespace) -> None:
    pipeline = InvoicePipeline(load_settings(args.config))
    _print_json(pipeline.get_invoice(args.invoice_id, args.user).to_dict())


def command_api(args: argparse.Namespace) -> None:
    from .api.server import create_app

    settings = load_settings(args.config)
    app = create_app(settings)
    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="NF-e Invoice Ingestion")
    parser.add_argument("--config", default="config.yaml", help="Path to the configuration YAML file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_parser = subparsers.add_parser("parse", help="Parse an invoice and print it as JSON")
    parse_parser.add_argument("source", help="Portal URL, QR code payload or path to an XML/HTML/PDF file")
    parse_parser.add_argument("--kind", choices=SOURCE_KINDS, default="auto")
    parse_parser.add_argument("--force-refresh", action="store_true", help="Ignore cached parse results")
    parse_parser.set_defaults(func=command_parse)

    ingest_parser = subparsers.add_parser("ingest", help="Parse an invoice and store it for a user")
    ingest_parser.add_argument("source", help="Portal URL, QR code payload or path to an XML/HTML/PDF file")
    ingest_parser.add_argument("--user", required=True, help="Owner of the invoice")
    ingest_parser.add_argument("--kind", choices=SOURCE_KINDS, default="auto")
    ingest_parser.add_argument("--custom-category", default=None)
    ingest_parser.add_argument("--force-refresh", action="store_true", help="Ignore cached parse results")
    ingest_parser.set_defaults(func=command_ingest)

    delete_parser = subparsers.add_parser("delete", help="Delete a stored invoice")
    delete_parser.add_argument("invoice_id")
    delete_parser.add_argument("--user", required=True)
    delete_parser.set_defaults(func=command_delete)

    show_parser = subparsers.add_parser("show", help="Print a stored invoice with its items")
    show_parser.add_argument("invoice_id")
    show_parser.add_argument("--user", required=True)
    show_parser.set_defaults(func=command_show)

    api_parser = subparsers.add_parser("api", help="Start the FastAPI server")
    api_parser.add_argument("--host", default="0.0.0.0")
    api_parser.add_argument("--port", type=int, default=8000)
    api_parser.add_argument("--reload", action="store_true", help="Enable auto reload (development only)")
    api_parser.set_defaults(func=command_api)

    return parser


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose)
    try:
        args.func(args)
    except InvoiceError as exc:
        LOGGER.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
