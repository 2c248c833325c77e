"""Tests for the snapshot export job."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carddex.db.operations import get_activity
from carddex.jobs.snapshot_export import export_snapshot, main
from carddex.models.failure import ProfileNotFoundError
from carddex.models.records import SyncEvent
from carddex.models.snapshot import validate_snapshot


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


class TestExportSnapshot:
    async def test_writes_snapshot_and_logs_export(
        self,
        tmp_path: Path,
        api_profile: str,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        output = tmp_path / "backups" / "profile.json"

        with patch("carddex.jobs.snapshot_export.async_session_factory", session_factory):
            written = await export_snapshot(api_profile, output)

        assert written == output
        document = json.loads(output.read_text(encoding="utf-8"))
        assert document["profileId"] == api_profile
        assert validate_snapshot(document).is_valid

        async with session_factory() as session:
            entries = await get_activity(
                session, api_profile, event_types=[SyncEvent.DATA_EXPORT.value]
            )
        assert len(entries) == 1

    async def test_default_file_name(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        api_profile: str,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        monkeypatch.chdir(tmp_path)

        with patch("carddex.jobs.snapshot_export.async_session_factory", session_factory):
            written = await export_snapshot(api_profile)

        assert written.name.startswith(f"carddex-backup-{api_profile}-")
        assert (tmp_path / written).exists()

    async def test_unknown_profile(
        self, tmp_path: Path, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        output = tmp_path / "missing.json"

        with (
            patch("carddex.jobs.snapshot_export.async_session_factory", session_factory),
            pytest.raises(ProfileNotFoundError),
        ):
            await export_snapshot("nobody", output)

        assert not output.exists()


class TestMain:
    def test_main_returns_1_for_unknown_profile(self) -> None:
        async def missing(profile_id: str, output_path: Path | None = None) -> Path:
            raise ProfileNotFoundError(profile_id)

        with patch("carddex.jobs.snapshot_export.export_snapshot", side_effect=missing):
            assert main(["nobody"]) == 1

    def test_main_passes_arguments(self, tmp_path: Path) -> None:
        output = tmp_path / "out.json"

        async def fake_export(profile_id: str, output_path: Path | None = None) -> Path:
            assert profile_id == "profile-1"
            assert output_path == output
            return output

        with patch("carddex.jobs.snapshot_export.export_snapshot", side_effect=fake_export):
            assert main(["profile-1", "--output", str(output)]) == 0
