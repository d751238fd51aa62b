import argparse
import json
import sys

from makura.config import get_settings, setup_logging
from makura.exporter import Exporter
from makura.loader import MappingLoader
from makura.models import SourceMessage, TargetMessage
from makura.translator import TranslatorBuilder


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _translator(args):
    return TranslatorBuilder().with_mappings_path(args.mappings).build()


def handle_translate(args):
    """Handles the 'translate' subcommand: source message -> target XML."""
    try:
        source = SourceMessage(content=_read(args.file), format=args.format)
        target = _translator(args).translate_request(source, args.route)
        print(target.content)
    except Exception as e:
        print(f"Error translating message: {e}", file=sys.stderr)
        sys.exit(1)


def handle_reply(args):
    """Handles the 'reply' subcommand: target XML -> the route's reply format."""
    try:
        target = TargetMessage(content=_read(args.file))
        reply = _translator(args).translate_response(target, args.route)
        print(reply.content)
    except Exception as e:
        print(f"Error translating reply: {e}", file=sys.stderr)
        sys.exit(1)


def handle_check(args):
    """Handles the 'check' subcommand: load and validate a route's mappings."""
    try:
        config = MappingLoader(args.mappings).load(args.route)
        print(
            f"Route '{config.route_id}' OK: {config.inbound_format.value} -> "
            f"{config.outbound_format or 'XML'}, {len(config.request)} request / "
            f"{len(config.response)} response mappings"
        )
    except Exception as e:
        print(f"Invalid route configuration: {e}", file=sys.stderr)
        sys.exit(1)


def handle_export(args):
    """Handles the 'export' subcommand: print the normalized route configuration."""
    try:
        config = MappingLoader(args.mappings).load(args.route)
        if args.format == "json":
            print(Exporter.to_json(config))
        else:
            print(Exporter.to_yaml(config), end="")
    except Exception as e:
        print(f"Error exporting route: {e}", file=sys.stderr)
        sys.exit(1)


def handle_schema(args):
    """Handles the 'schema' subcommand: print the route document JSON Schema."""
    print(json.dumps(Exporter.json_schema(), indent=2))


def main(argv=None):
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="makura",
        description="Makura CLI - declarative translation of financial messages.",
    )
    parser.add_argument(
        "--mappings",
        default=settings.mappings_path,
        help="Directory holding <routeId>.yaml mapping files (default: %(default)s).",
    )
    parser.add_argument(
        "--log-level", default=settings.log_level, help="Log level (default: %(default)s)."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Subcommand: translate
    translate_parser = subparsers.add_parser("translate", help="Translate a source message to target XML.")
    translate_parser.add_argument("route", help="Route id.")
    translate_parser.add_argument("file", help="Path to the source message.")
    translate_parser.add_argument("--format", help="Override the route's inbound format.")
    translate_parser.set_defaults(func=handle_translate)

    # Subcommand: reply
    reply_parser = subparsers.add_parser("reply", help="Translate a target XML reply back.")
    reply_parser.add_argument("route", help="Route id.")
    reply_parser.add_argument("file", help="Path to the target XML message.")
    reply_parser.set_defaults(func=handle_reply)

    # Subcommand: check
    check_parser = subparsers.add_parser("check", help="Validate a route's mapping file.")
    check_parser.add_argument("route", help="Route id.")
    check_parser.set_defaults(func=handle_check)

    # Subcommand: export
    export_parser = subparsers.add_parser("export", help="Print a route's normalized configuration.")
    export_parser.add_argument("route", help="Route id.")
    export_parser.add_argument("--format", choices=("yaml", "json"), default="yaml")
    export_parser.set_defaults(func=handle_export)

    # Subcommand: schema
    schema_parser = subparsers.add_parser("schema", help="Print the JSON Schema of mapping files.")
    schema_parser.set_defaults(func=handle_schema)

    args = parser.parse_args(argv)
    setup_logging(args.log_level, stream=sys.stderr)
    args.func(args)


if __name__ == "__main__":
    main()
