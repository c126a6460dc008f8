# WORKFLOW: Command-line runner for the tariff extraction pipeline.
# Used by: Operators loading tariff documents without the HTTP API
# Functions:
# 1. build_request() - Text file or directory of page images -> PipelineRequest
# 2. run() - Run the pipeline (or spreadsheet import), optionally store the records
# 3. main() - Argument parsing and exit code
#
# CLI flow: Path -> Request (text / pages / spreadsheet) -> Pipeline -> JSON report -> Optional upsert
# Page images are read from *.png / *.jpg files; the page number is the last number in the file name.

"""
Command-line runner for the tariff extraction pipeline.
"""

import argparse
import asyncio
import json
import logging
import re
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.session import get_session_factory, init_db  # noqa: E402
from etl.ingest_table import SPREADSHEET_SUFFIXES  # noqa: E402
from etl.load_records import record_run, upsert_final_records  # noqa: E402
from pipeline.models import ExtractionOptions, PageImage, PipelineRequest, PipelineResult  # noqa: E402
from pipeline.runner import run_pipeline, run_table_import  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg"}
PAGE_NUMBER = re.compile(r'(\d+)(?!.*\d)')


def build_request(path: Path, options: ExtractionOptions) -> PipelineRequest:
    """
    Build a pipeline request from a text file or a directory of page images.

    Args:
        path: Text file, or directory holding one image per page
        options: Run options

    Returns:
        PipelineRequest
    """
    if path.is_dir():
        pages = []
        images = sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        for position, image in enumerate(images, start=1):
            match = PAGE_NUMBER.search(image.stem)
            page_number = int(match.group(1)) if match and int(match.group(1)) > 0 else position
            pages.append(PageImage(page_number=page_number, data=image.read_bytes()))
        if not pages:
            raise ValueError(f"No page images found in {path}")
        logger.info(f"Loaded {len(pages)} page images from {path}")
        return PipelineRequest(page_images=pages, filename=path.name, options=options)

    text = path.read_text(encoding="utf-8", errors="replace")
    logger.info(f"Loaded {len(text)} characters from {path}")
    return PipelineRequest(document_content=text, filename=path.name, options=options)


async def run(path: Path, options: ExtractionOptions, persist: bool = False) -> PipelineResult:
    """
    Run the pipeline for one path and optionally store the final records.

    Args:
        path: Text file, spreadsheet, or directory of page images
        options: Run options
        persist: Upsert final records into the tariff table

    Returns:
        PipelineResult
    """
    if path.is_file() and path.suffix.lower() in SPREADSHEET_SUFFIXES | {".zip"}:
        result = await run_table_import(str(path), options=options)
    else:
        result = await run_pipeline(build_request(path, options))

    if persist and result.success:
        init_db()
        db = get_session_factory()()
        try:
            inserted, updated = upsert_final_records(result.final_records, db, path.name)
            record_run(result.quality_report, db, path.name)
            logger.info(f"Stored records: {inserted} inserted, {updated} updated")
        finally:
            db.close()

    return result


def main(argv: Optional[list] = None) -> int:
    """
    Main CLI function.
    """
    parser = argparse.ArgumentParser(description='Extract tariff codes from a document')
    parser.add_argument('path', help='Text file, spreadsheet (.csv/.xlsx/.zip) or directory of page images')
    parser.add_argument('--max-chunk-size', type=int, help='Maximum characters per chunk')
    parser.add_argument('--overlap', type=int, help='Characters shared by consecutive chunks')
    parser.add_argument('--concurrency', type=int, help='Units extracted per batch')
    parser.add_argument('--max-retries', type=int, help='Retries per unit')
    parser.add_argument('--max-pages', type=int, help='Maximum pages processed')
    parser.add_argument('--persist', action='store_true', help='Store final records in the database')
    parser.add_argument('--output', help='Write the JSON result to this file instead of stdout')

    args = parser.parse_args(argv)

    try:
        options = ExtractionOptions.from_settings(
            max_chunk_size=args.max_chunk_size,
            overlap=args.overlap,
            concurrency=args.concurrency,
            max_retries=args.max_retries,
            max_pages=args.max_pages,
        )
        result = asyncio.run(run(Path(args.path), options, persist=args.persist))
    except Exception as e:
        logger.error(f"Extraction failed: {e}")
        return 1

    payload = result.model_dump_json(indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        logger.info(f"Result written to {args.output}")
    else:
        print(payload)

    report = result.quality_report
    logger.info(
        f"{len(result.final_records)} records, state={report.state.value}, "
        f"accuracy estimate={report.estimated_accuracy}"
    )
    return 0 if result.success else 2


if __name__ == "__main__":
    sys.exit(main())
