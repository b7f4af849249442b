"""Smoke-test the configured storage provider end to end.

Usage:
    uv run python -m scripts.storage_check [folder]
Uploads a small probe object, reads it back, copies it, and deletes both
copies using STORAGE_PROVIDER and its credentials from the environment/.env.
"""

import asyncio
import sys

from contentstore.core.config import get_settings
from contentstore.infrastructure.exceptions import StorageException
from contentstore.infrastructure.external.storage import StorageFactory
from contentstore.shared.telemetry import setup_logging, setup_telemetry_from_settings

PROBE = b"contentstore storage check\n"


async def main() -> None:
    """Run the probe against the configured provider; exit 1 on failure."""
    folder = sys.argv[1] if len(sys.argv) > 1 else "healthchecks"
    settings = get_settings()
    setup_logging()
    telemetry = setup_telemetry_from_settings(settings)

    storage = StorageFactory.create_storage_service(settings)
    print(f"Provider: {settings.storage_provider} ({type(storage).__name__})")

    key = storage.generate_key(folder, "probe.txt")
    copy_key = f"{key}.copy"
    try:
        result = await storage.upload(
            key, PROBE, content_type="text/plain", metadata={"purpose": "storage check"}
        )
        print(f"Uploaded {result.key} ({result.size} bytes) -> {result.url}")

        downloaded = await storage.download(key)
        if downloaded.data != PROBE:
            print("Downloaded bytes do not match the probe", file=sys.stderr)
            sys.exit(1)
        print(f"Downloaded {len(downloaded.data)} bytes ({downloaded.content_type})")

        await storage.copy(key, copy_key)
        print(f"Copied to {copy_key}: exists={await storage.exists(copy_key)}")
    except StorageException as e:
        print(f"Storage check failed: {e.to_dict()}", file=sys.stderr)
        sys.exit(1)
    finally:
        for k in (key, copy_key):
            try:
                await storage.delete(k)
            except StorageException as e:
                print(f"Cleanup of {k} failed: {e.message}", file=sys.stderr)
        aclose = getattr(storage, "aclose", None)
        if aclose is not None:
            await aclose()
        telemetry.shutdown()
    print("Storage check passed")


if __name__ == "__main__":
    asyncio.run(main())
