"""
scanid - identify one product from the command line.

Uses an in-memory product catalog (YAML) and the packaged canonical
ingredient store; an LLM vision provider is used when an image is given.

Usage:
    scanid --catalog products.yml --barcode 5000000000017 --age 8
    scanid --catalog products.yml --image lotion.jpg --age 6 --allergy nuts --eczema
"""
import argparse
import asyncio
import json
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .adapters.provider import LLMProvider, LLMVisionIdentifier, ProviderSelectionPolicy
from .collaborators import Collaborators, load_ingredient_store, load_product_catalog
from .config_loader import load_cascade_config
from .run import CascadeOrchestrator
from .schemas import ChildProfile, IdentificationResult, ScanInput


def persist_run_artifacts(result: IdentificationResult, out_root: Path = Path("runs")) -> Path:
    """
    Persist the scan result and its stage trace to JSONL files.

    Artifacts written to: runs/<timestamp>/{results.jsonl, telemetry.jsonl}

    Returns:
        Directory the artifacts were written to
    """
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    run_dir = out_root / timestamp
    run_dir.mkdir(parents=True, exist_ok=True)

    with open(run_dir / "results.jsonl", "a") as f:
        f.write(result.model_dump_json() + "\n")

    # One telemetry line per stage outcome, tagged with version tracking
    with open(run_dir / "telemetry.jsonl", "a") as f:
        for outcome in result.stage_trace:
            event = outcome.model_dump(mode="json")
            event["config_version"] = result.config_version
            event["ingredient_store_version"] = result.ingredient_store_version
            f.write(json.dumps(event, sort_keys=True) + "\n")

    print(f"[CASCADE] Artifacts saved to: {run_dir}/", file=sys.stderr)
    return run_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Identify a personal-care product and score it for a child"
    )
    parser.add_argument("--catalog", type=Path, required=True, help="Product catalog YAML")
    parser.add_argument("--barcode", help="Barcode value read by the caller")
    parser.add_argument("--image", help="Image path, data: URI or http(s) URL")
    parser.add_argument("--age", type=int, default=10, help="Child age in years (default: 10)")
    parser.add_argument("--allergy", action="append", default=[], help="Declared allergy (repeatable)")
    parser.add_argument("--eczema", action="store_true", help="Child has eczema")
    parser.add_argument("--sensitive-skin", action="store_true", help="Child has sensitive skin")
    parser.add_argument("--profile", default="default", help="Cascade profile from cascade_profiles.yml")
    parser.add_argument(
        "--provider",
        default=LLMProvider.AUTO.value,
        choices=[p.value for p in LLMProvider],
        help="Preferred vision provider (default: auto)",
    )
    parser.add_argument(
        "--admin-provider",
        default=None,
        choices=[p.value for p in LLMProvider],
        help="Provider override that wins over --provider",
    )
    parser.add_argument("--config-dir", type=Path, default=None, help="Alternative configs directory")
    parser.add_argument("--ingredients-db", type=Path, default=None, help="Canonical ingredient YAML")
    parser.add_argument("--save-artifacts", action="store_true", help="Write runs/<timestamp>/*.jsonl")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    cfg = load_cascade_config(args.config_dir)
    vision = None
    if args.image:
        policy = ProviderSelectionPolicy(
            preferred=LLMProvider(args.provider),
            admin_override=LLMProvider(args.admin_provider) if args.admin_provider else None,
        )
        vision = LLMVisionIdentifier(policy)

    collaborators = Collaborators(
        product_db=load_product_catalog(args.catalog),
        ingredient_store=load_ingredient_store(args.ingredients_db),
        vision=vision,
    )
    orchestrator = CascadeOrchestrator(collaborators, cfg, profile=args.profile)
    profile = ChildProfile(
        age_years=args.age,
        allergies=args.allergy,
        has_eczema=args.eczema,
        has_sensitive_skin=args.sensitive_skin,
    )

    result = asyncio.run(orchestrator.identify(ScanInput(barcode=args.barcode, image_ref=args.image), profile))
    print(result.model_dump_json(indent=2))

    if args.save_artifacts:
        persist_run_artifacts(result)
    return 0 if result.status.value == "identified" else 1


if __name__ == "__main__":
    sys.exit(main())
