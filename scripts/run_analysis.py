"""
Run the OASIS analysis pipeline on a batch of documents.

Input is a JSON list of documents:
    [{"document_id": "...", "source_text": "...",
      "doctor_order_text": "...optional physician order...",
      "analysis": {...optional camelCase extraction...},
      "episode": {"admission_source": "institutional", "timing": "late"}}]

Documents without an "analysis" go through the AI extraction call.

Usage:
    python scripts/run_analysis.py --data data/documents.json
    python scripts/run_analysis.py --data data/documents.json --count 5
    python scripts/run_analysis.py --data data/documents.json --tables cms_weights.json
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load .env
env_path = project_root / ".env"
if env_path.exists():
    for line in env_path.read_text().strip().split("\n"):
        if "=" in line and not line.startswith("#"):
            key, val = line.split("=", 1)
            os.environ[key.strip()] = val.strip().strip("'\"")

from pdgm_engine import config
from pdgm_engine.errors import TableConfigurationError
from pdgm_engine.pdgm.tables import load_tables
from pdgm_engine.pipeline import run_pipeline
from pdgm_engine.rate_limiter import configure_rate_limit


def main():
    parser = argparse.ArgumentParser(description="Run OASIS validation and PDGM revenue analysis")
    parser.add_argument("--data", type=str, required=True, help="Path to documents JSON")
    parser.add_argument("--output", type=str, default="output", help="Output directory")
    parser.add_argument("--count", type=int, default=None, help="Analyze only the first N documents")
    parser.add_argument("--tables", type=str, default=None, help="JSON payment-tables override file")
    parser.add_argument("--rpm", type=int, default=None, help="Extraction requests per minute (0 disables throttling)")
    args = parser.parse_args()

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.rpm is not None:
        configure_rate_limit(args.rpm)

    tables = None
    if args.tables:
        try:
            tables = load_tables(args.tables)
        except TableConfigurationError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

    data_path = Path(args.data)
    with open(data_path, encoding="utf-8") as f:
        raw_documents = json.load(f)
    if not isinstance(raw_documents, list):
        print(f"ERROR: {data_path} must hold a JSON list of documents")
        sys.exit(1)

    # validated one at a time by the pipeline so a malformed entry fails alone
    documents = raw_documents[:args.count]
    print(f"Loaded {len(documents)} documents from {data_path}\n")

    output_dir = project_root / args.output
    batch = run_pipeline(documents, output_dir, tables=tables)

    # Print summary
    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE")
    print("=" * 60)
    print(f"Documents analyzed:  {batch.total_documents} ({batch.failed_documents} failed)")
    print(f"Avg completeness:    {batch.avg_completeness_score:.1f}")
    print(f"Dropped items:       {batch.total_dropped_items}")
    print(f"Missing fields:      {batch.total_missing_fields}")
    print(f"Current revenue:     ${batch.total_current_revenue:,.2f}")
    print(f"Optimized revenue:   ${batch.total_optimized_revenue:,.2f}")
    print(f"Revenue increase:    ${batch.total_revenue_increase:,.2f}")
    print(f"HIPPS distribution:  {batch.hipps_distribution}")


if __name__ == "__main__":
    main()
