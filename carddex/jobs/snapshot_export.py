"""
Export a profile snapshot to a JSON file.

Creates a snapshot from the live records, writes it out, and logs the
export in the profile's activity log.

    python -m carddex.jobs.snapshot_export <profile_id> [--output FILE]
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from carddex.db.database import async_session_factory
from carddex.models.failure import ProfileNotFoundError
from carddex.services.snapshot_service import create_snapshot, log_export

logger = logging.getLogger(__name__)


async def export_snapshot(profile_id: str, output_path: Path | None = None) -> Path:
    """
    Write a snapshot of a profile to disk.

    Args:
        profile_id: Profile to export
        output_path: Destination file. Defaults to carddex-backup-<profile>-<ms>.json

    Returns:
        Path the snapshot was written to.

    Raises:
        ProfileNotFoundError: If the profile does not exist
    """
    async with async_session_factory() as session:
        snapshot = await create_snapshot(session, profile_id)

        if output_path is None:
            output_path = Path(f"carddex-backup-{profile_id}-{snapshot.created_at}.json")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")

        await log_export(session, profile_id)
        await session.commit()

    logger.info(
        "Exported snapshot for %s (%d cards, checksum %d) to %s",
        profile_id,
        snapshot.stats.collection_cards,
        snapshot.checksum,
        output_path,
    )
    return output_path


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Export a CardDex profile snapshot")
    parser.add_argument("profile_id", help="Profile to export")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Output JSON file")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(export_snapshot(args.profile_id, args.output))
    except ProfileNotFoundError:
        logger.error("Profile not found: %s", args.profile_id)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
