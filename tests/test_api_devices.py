"""Tests for device API endpoints."""

from httpx import AsyncClient


class TestDeviceRegistration:
    async def test_register_and_list(self, client: AsyncClient, api_profile: str) -> None:
        first = await client.post(
            f"/profiles/{api_profile}/devices",
            json={"device_id": "phone-1", "device_type": "android", "app_version": "1.0.0"},
        )
        await client.post(
            f"/profiles/{api_profile}/devices",
            json={"device_id": "phone-1", "device_type": "android", "app_version": "1.2.0"},
        )
        await client.post(f"/profiles/{api_profile}/devices", json={"device_id": "browser"})

        assert first.status_code == 200
        assert first.json()["device_type"] == "android"
        assert first.json()["registered_at"] > 0

        response = await client.get(f"/profiles/{api_profile}/devices")

        assert response.status_code == 200
        devices = {d["device_id"]: d for d in response.json()["devices"]}
        assert devices.keys() == {"phone-1", "browser"}
        assert devices["phone-1"]["registrations"] == 2
        assert devices["phone-1"]["app_version"] == "1.2.0"
        assert devices["browser"]["device_type"] == "unknown"

    async def test_invalid_device_type_is_422(self, client: AsyncClient, api_profile: str) -> None:
        response = await client.post(
            f"/profiles/{api_profile}/devices",
            json={"device_id": "fridge", "device_type": "toaster"},
        )

        assert response.status_code == 422

    async def test_unknown_profile(self, client: AsyncClient) -> None:
        response = await client.post("/profiles/nobody/devices", json={"device_id": "phone-1"})

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    async def test_status_counts_devices(self, client: AsyncClient, api_profile: str) -> None:
        await client.post(f"/profiles/{api_profile}/devices", json={"device_id": "phone-1"})
        await client.post(f"/profiles/{api_profile}/devices", json={"device_id": "tablet"})

        response = await client.get(f"/profiles/{api_profile}/status")

        assert response.json()["device_count"] == 2


class TestHeartbeat:
    async def test_matching_checksum_is_in_sync(self, client: AsyncClient, api_profile: str) -> None:
        server = (await client.get(f"/profiles/{api_profile}/checksum")).json()["checksum"]

        response = await client.post(
            f"/profiles/{api_profile}/devices/phone-1/heartbeat",
            json={"client_checksum": server},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["device_id"] == "phone-1"
        assert data["server_checksum"] == server
        assert data["in_sync"] is True

    async def test_stale_checksum_is_out_of_sync(
        self, client: AsyncClient, api_profile: str
    ) -> None:
        server = (await client.get(f"/profiles/{api_profile}/checksum")).json()["checksum"]

        response = await client.post(
            f"/profiles/{api_profile}/devices/phone-1/heartbeat",
            json={"client_checksum": server + 1},
        )

        assert response.json()["in_sync"] is False

    async def test_heartbeat_without_checksum(self, client: AsyncClient, api_profile: str) -> None:
        response = await client.post(f"/profiles/{api_profile}/devices/phone-1/heartbeat", json={})

        assert response.json()["in_sync"] is True
