from pathlib import Path

import pytest

from gcs_resource.errors import BucketNotVersionedError
from gcs_resource.errors import ConfigurationError
from gcs_resource.errors import NoCandidatesError
from gcs_resource.errors import PreconditionError
from gcs_resource.models import Source
from gcs_resource.models import Version
from gcs_resource.versions.catalog import VersionCatalog
from tests.unit.mocks.mock_object_store import MockObjectStore


PATTERN = r"folder/file-(.*)\.tgz"


@pytest.fixture
def pattern_source():
    return Source(bucket="bucket-name", regexp=PATTERN)


@pytest.fixture
def versioned_source():
    return Source(bucket="bucket-name", versioned_file="folder/version")


@pytest.mark.asyncio
async def test_resolve_orders_numerically_not_lexicographically(pattern_source):
    store = MockObjectStore(
        keys=["folder/file-1.5.6-build.10.tgz", "folder/file-1.5.6-build.100.tgz", "folder/file-1.5.6-build.9.tgz"]
    )

    resolved = await VersionCatalog(store).resolve(pattern_source)

    assert resolved.object_key == "folder/file-1.5.6-build.100.tgz"
    assert resolved.version == "1.5.6-build.100"
    assert resolved.generation is None
    assert store.list_calls == [("bucket-name", "")]


@pytest.mark.asyncio
async def test_resolve_picks_latest_of_mixed_versions(pattern_source):
    store = MockObjectStore(
        keys=["folder/file-0.0.1.tgz", "folder/file-3.53.tgz", "folder/file-2.33.333.tgz", "folder/file-2.4.3.tgz"]
    )

    resolved = await VersionCatalog(store).resolve(pattern_source)

    assert resolved.object_key == "folder/file-3.53.tgz"


@pytest.mark.asyncio
async def test_resolve_ignores_non_matching_keys(pattern_source):
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "folder/readme.md", "folder/file-9.0.zip"])

    resolved = await VersionCatalog(store).resolve(pattern_source)

    assert resolved.object_key == "folder/file-1.0.tgz"


@pytest.mark.asyncio
async def test_resolve_with_requested_path_skips_listing(pattern_source):
    store = MockObjectStore(keys=["folder/file-2.0.tgz"])

    resolved = await VersionCatalog(store).resolve(pattern_source, Version(path="folder/file-1.0.tgz"))

    assert resolved.object_key == "folder/file-1.0.tgz"
    assert resolved.version == "1.0"
    assert store.list_calls == []


@pytest.mark.asyncio
async def test_resolve_without_candidates_fails(pattern_source):
    store = MockObjectStore(keys=["folder/other.txt"])

    with pytest.raises(NoCandidatesError, match="is your regexp correct"):
        await VersionCatalog(store).resolve(pattern_source)


@pytest.mark.asyncio
async def test_both_modes_configured_fails_before_network():
    store = MockObjectStore()
    source = Source(bucket="bucket-name", regexp=PATTERN, versioned_file="folder/version")

    with pytest.raises(ConfigurationError, match="either regexp or versioned_file"):
        await VersionCatalog(store).resolve(source)
    assert store.list_calls == []
    assert store.versioning_calls == []


@pytest.mark.asyncio
async def test_missing_bucket_fails_before_network():
    store = MockObjectStore()

    with pytest.raises(ConfigurationError, match="please specify the bucket"):
        await VersionCatalog(store).resolve(Source(regexp=PATTERN))
    assert store.list_calls == []


@pytest.mark.asyncio
async def test_pattern_without_group_fails_before_network():
    store = MockObjectStore(keys=["folder/file-1.0.tgz"])

    with pytest.raises(ConfigurationError):
        await VersionCatalog(store).resolve(Source(bucket="bucket-name", regexp=r"folder/file-.*\.tgz"))
    assert store.list_calls == []


@pytest.mark.asyncio
async def test_invalid_generation_override_fails_before_network(versioned_source):
    store = MockObjectStore(versioned=True)

    with pytest.raises(ConfigurationError, match="invalid generation"):
        await VersionCatalog(store).resolve(versioned_source, Version(generation="abc"))
    assert store.versioning_calls == []


@pytest.mark.asyncio
async def test_versioned_file_on_unversioned_bucket_fails(versioned_source, tmp_path):
    store = MockObjectStore(versioned=False, generations={"folder/version": [1, 2]})
    catalog = VersionCatalog(store)

    for requested in (Version(), Version(generation="0"), Version(generation="12345")):
        with pytest.raises(BucketNotVersionedError, match="bucket is not versioned"):
            await catalog.fetch(versioned_source, requested, str(tmp_path / "version"))

    assert store.download_calls == []
    assert not (tmp_path / "version").exists()


@pytest.mark.asyncio
async def test_versioned_file_zero_generation_resolves_live(versioned_source):
    store = MockObjectStore(versioned=True, generations={"folder/version": [11, 22, 33]})

    resolved = await VersionCatalog(store).resolve(versioned_source, Version(generation="0"))

    assert resolved.object_key == "folder/version"
    assert resolved.generation == 33
    assert resolved.wire_generation == 33


@pytest.mark.asyncio
async def test_versioned_file_pinned_generation(versioned_source):
    store = MockObjectStore(versioned=True, generations={"folder/version": [11, 22, 33]})

    resolved = await VersionCatalog(store).resolve(versioned_source, Version(generation="22"))

    assert resolved.generation == 22
    assert store.generation_calls == []


@pytest.mark.asyncio
async def test_versioned_file_without_generations_fails(versioned_source):
    store = MockObjectStore(versioned=True)

    with pytest.raises(PreconditionError, match="no generations"):
        await VersionCatalog(store).resolve(versioned_source)


@pytest.mark.asyncio
async def test_generations_keep_store_order():
    store = MockObjectStore(versioned=True, generations={"folder/version": [30, 10, 20]})

    assert await VersionCatalog(store).generations("bucket-name", "folder/version") == [30, 10, 20]


@pytest.mark.asyncio
async def test_generations_require_versioning():
    store = MockObjectStore(versioned=False, generations={"folder/version": [1]})

    with pytest.raises(BucketNotVersionedError):
        await VersionCatalog(store).generations("bucket-name", "folder/version")
    assert store.generation_calls == []


@pytest.mark.asyncio
async def test_check_without_current_returns_latest_only(pattern_source):
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "folder/file-1.10.tgz", "folder/file-1.9.tgz"])

    versions = await VersionCatalog(store).check(pattern_source)

    assert versions == [Version(path="folder/file-1.10.tgz")]


@pytest.mark.asyncio
async def test_check_returns_current_and_newer_in_order(pattern_source):
    store = MockObjectStore(
        keys=["folder/file-1.10.tgz", "folder/file-1.0.tgz", "folder/file-2.0.tgz", "folder/file-1.9.tgz"]
    )

    versions = await VersionCatalog(store).check(pattern_source, Version(path="folder/file-1.9.tgz"))

    assert [v.path for v in versions] == ["folder/file-1.9.tgz", "folder/file-1.10.tgz", "folder/file-2.0.tgz"]


@pytest.mark.asyncio
async def test_check_with_vanished_current_returns_latest(pattern_source):
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "folder/file-2.0.tgz"])

    versions = await VersionCatalog(store).check(pattern_source, Version(path="folder/file-1.5.tgz"))

    assert versions == [Version(path="folder/file-2.0.tgz")]


@pytest.mark.asyncio
async def test_check_empty_bucket_returns_nothing(pattern_source):
    assert await VersionCatalog(MockObjectStore()).check(pattern_source) == []


@pytest.mark.asyncio
async def test_check_versioned_from_current_generation(versioned_source):
    store = MockObjectStore(versioned=True, generations={"folder/version": [11, 22, 33]})
    catalog = VersionCatalog(store)

    assert await catalog.check(versioned_source, Version(generation="22")) == [
        Version(generation="22"),
        Version(generation="33"),
    ]
    assert await catalog.check(versioned_source) == [Version(generation="33")]
    assert await catalog.check(versioned_source, Version(generation="99")) == [Version(generation="33")]


@pytest.mark.asyncio
async def test_fetch_streams_resolved_object(pattern_source, tmp_path: Path):
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "folder/file-1.1.tgz"])
    store.objects["folder/file-1.1.tgz"] = b"payload"
    target = tmp_path / "dest" / "file-1.1.tgz"

    resolved = await VersionCatalog(store).fetch(pattern_source, None, str(target))

    assert resolved.object_key == "folder/file-1.1.tgz"
    assert target.read_bytes() == b"payload"
    assert store.download_calls == [("bucket-name", "folder/file-1.1.tgz", None)]


def test_resolved_object_url():
    from gcs_resource.models import ResolvedObject

    assert ResolvedObject(bucket="b", object_key="k/v.tgz").url() == "gs://b/k/v.tgz"
    assert ResolvedObject(bucket="b", object_key="k", generation=42).url() == "gs://b/k#42"


@pytest.mark.asyncio
async def test_unanchored_pattern_sees_matches_outside_its_directory(pattern_source):
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "mirror/folder/file-2.0.tgz"])

    resolved = await VersionCatalog(store).resolve(pattern_source)

    assert resolved.object_key == "mirror/folder/file-2.0.tgz"
    assert store.list_calls == [("bucket-name", "")]


@pytest.mark.asyncio
async def test_anchored_pattern_narrows_listing():
    store = MockObjectStore(keys=["folder/file-1.0.tgz", "mirror/folder/file-2.0.tgz"])
    source = Source(bucket="bucket-name", regexp=r"^folder/file-(.*)\.tgz")

    resolved = await VersionCatalog(store).resolve(source)

    assert resolved.object_key == "folder/file-1.0.tgz"
    assert store.list_calls == [("bucket-name", "folder/")]


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_local_file(pattern_source, tmp_path: Path):
    store = MockObjectStore(
        keys=["folder/file-1.1.tgz"], fail_downloads={"folder/file-1.1.tgz": ConnectionError("stream reset")}
    )
    store.objects["folder/file-1.1.tgz"] = b"new payload"
    target = tmp_path / "dest" / "file.tgz"
    target.parent.mkdir()
    target.write_bytes(b"old payload")

    with pytest.raises(ConnectionError):
        await VersionCatalog(store).fetch(pattern_source, None, str(target))

    assert target.read_bytes() == b"old payload"
    assert [p.name for p in target.parent.iterdir()] == ["file.tgz"]
