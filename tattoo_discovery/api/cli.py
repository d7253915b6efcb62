"""
Operator CLI for the tattoo design generation service.

Architectural role:
- Terminal access to the same service, ledger and store the HTTP adapter uses.
- Intended for operators: `record-payment` grants an entitlement directly,
  without a Stripe session.

Commands:
- `generate`: run the pipeline and write the PNG (plus style variants) to
  disk, or print the prompt and setup guidance when no provider succeeds.
  With `--user-id` / `--email` the request goes through the entitlement gate.
- `record-payment`: arm an entitlement for an identity.
- `usage`: print the entitlement state for an identity.

Error handling strategy:
- Validation and entitlement errors print a message and exit with status 2.
- Unexpected exceptions propagate with a traceback.
"""

import argparse
import base64
import json
import os
import re
import sys

from tattoo_discovery.config import configure_logging, load_settings
from tattoo_discovery.designs.repository import DesignRepository
from tattoo_discovery.entitlement.errors import EntitlementDenied
from tattoo_discovery.entitlement.identity import identity_key
from tattoo_discovery.entitlement.ledger import EntitlementLedger
from tattoo_discovery.entitlement.store import JsonFileDocumentStore
from tattoo_discovery.image.errors import GenerationCancelled, ValidationError
from tattoo_discovery.image.models import (
    ColorPreference,
    DesignRequest,
    GenerationOutcome,
    ProviderName,
    SizePreference,
)
from tattoo_discovery.image.polling import CancelToken
from tattoo_discovery.image.reference import decode_reference_image
from tattoo_discovery.image.service import DesignGenerationService, build_providers


# =========================================================
# ARGUMENTS
# =========================================================

def build_parser():
    parser = argparse.ArgumentParser(prog="tattoo-discovery", description=__doc__.strip().splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a tattoo design")
    gen.add_argument("--subject", default="", help="Subject matter")
    gen.add_argument("--style", action="append", default=[], help="Style (repeatable; first is primary)")
    gen.add_argument("--color", choices=["color", "bw"], default=None)
    gen.add_argument("--size", choices=["small", "medium", "large", "all"], default=None)
    gen.add_argument("--body-part", action="append", default=[], dest="body_parts")
    gen.add_argument("--reference", help="Path to a reference image")
    gen.add_argument("--provider", help="Preferred provider (replicate, vertex, gemini, huggingface)")
    gen.add_argument("--all-styles", action="store_true", help="Also render every other catalog style")
    gen.add_argument("--output", default="design.png", help="Output PNG path")
    _add_identity(gen, required=False)

    pay = sub.add_parser("record-payment", help="Arm a generation entitlement")
    _add_identity(pay, required=True)

    usage = sub.add_parser("usage", help="Show entitlement state")
    _add_identity(usage, required=True)

    return parser


def _add_identity(parser, required):
    group = parser.add_mutually_exclusive_group(required=required)
    group.add_argument("--user-id")
    group.add_argument("--email")


# =========================================================
# COMMANDS
# =========================================================

def _variant_path(output, style):
    stem, ext = os.path.splitext(output)
    slug = re.sub(r"[^a-z0-9]+", "-", style.lower()).strip("-")
    return f"{stem}-{slug}{ext or '.png'}"


def _write_png(path, image_base64):
    with open(path, "wb") as f:
        f.write(base64.b64decode(image_base64))
    print(f"Saved {path}")


def cmd_generate(args, settings, ledger, designs):
    reference_image = None
    reference_mime_type = None
    if args.reference:
        with open(args.reference, "rb") as f:
            encoded = base64.b64encode(f.read()).decode("ascii")
        reference_image, reference_mime_type = decode_reference_image(
            encoded, max_mb=settings.max_reference_image_mb
        )

    request = DesignRequest(
        styles=tuple(args.style),
        subject_matter=args.subject,
        color_preference=ColorPreference.parse(args.color),
        size_preference=SizePreference.parse(args.size),
        body_parts=tuple(args.body_parts),
        reference_image=reference_image,
        reference_mime_type=reference_mime_type,
        preferred_provider=ProviderName.parse(args.provider),
        generate_all_styles=args.all_styles,
    )

    key = None
    gated = args.user_id is not None or args.email is not None
    if gated:
        key = identity_key(user_id=args.user_id, email=args.email)

    service = DesignGenerationService(
        ledger if gated else None, build_providers(settings.providers), designs=designs
    )
    outcome = service.generate(
        request, identity_key=key, cancel_token=CancelToken(timeout=settings.generation_timeout)
    )

    if isinstance(outcome, GenerationOutcome):
        print(f"Model: {outcome.result.model}")
        print(f"Prompt: {outcome.prompt}")
        _write_png(args.output, outcome.result.image_base64)
        for item in outcome.style_images[1:]:
            _write_png(_variant_path(args.output, item.style), item.image_base64)
        return 0

    print("No image generated.")
    print(f"Prompt: {outcome.prompt}\n")
    print(outcome.note)
    for error in outcome.errors:
        print(f"- {error}")
    return 1


def cmd_record_payment(args, ledger):
    key = identity_key(user_id=args.user_id, email=args.email)
    entitlement = ledger.record_payment(key, user_id=args.user_id, email=args.email)
    print(json.dumps(entitlement.to_document(), indent=2))
    return 0


def cmd_usage(args, ledger):
    key = identity_key(user_id=args.user_id, email=args.email)
    decision = ledger.check_entitlement(key)
    print(json.dumps({
        "identityKey": key,
        "allowed": decision.allowed,
        "reason": decision.reason,
        "usage": decision.entitlement.to_document() if decision.entitlement else None,
    }, indent=2))
    return 0


# =========================================================
# MAIN
# =========================================================

def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    store = JsonFileDocumentStore(settings.data_dir)
    ledger = EntitlementLedger(store, generation_limit=settings.generation_limit)
    designs = DesignRepository(store, image_dir=os.path.join(settings.data_dir, "designs"))

    try:
        if args.command == "generate":
            return cmd_generate(args, settings, ledger, designs)
        if args.command == "record-payment":
            return cmd_record_payment(args, ledger)
        return cmd_usage(args, ledger)
    except ValidationError as err:
        print(f"Invalid request: {err}", file=sys.stderr)
        return 2
    except EntitlementDenied as err:
        print(f"Generation refused ({err.reason}): {err.message}", file=sys.stderr)
        return 2
    except GenerationCancelled:
        print(f"Generation timed out after {settings.generation_timeout:g}s", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
