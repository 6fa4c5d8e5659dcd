"""
Tests for endpoint listers.
"""

import pytest

from mcmigrate.core.exceptions import ListingError
from mcmigrate.reconciliation import (
    InMemoryObjectLister,
    McObjectLister,
    ObjectLister,
    parse_listing_line,
)
from mcmigrate.types import Endpoint, ObjectRecord

BUCKET = Endpoint.parse("a/bucket1")


async def collect(lister, endpoint=BUCKET):
    return [record async for record in lister.list_objects(endpoint)]


class TestParseListingLine:
    def test_object(self):
        record = parse_listing_line(
            '{"status":"success","type":"file","key":"photos/cat.jpg","size":2048,'
            '"etag":"\\"abc123\\"","lastModified":"2024-01-01T00:00:00Z"}'
        )

        assert record == ObjectRecord(
            key="photos/cat.jpg", size=2048, etag="abc123", last_modified="2024-01-01T00:00:00Z"
        )

    def test_folder_is_skipped(self):
        assert parse_listing_line('{"status":"success","type":"folder","key":"photos/"}') is None

    def test_error_record(self):
        message = parse_listing_line(
            '{"status":"error","error":{"message":"Unable to list",'
            '"cause":{"message":"Bucket does not exist"}}}'
        )

        assert message == "Unable to list: Bucket does not exist"

    @pytest.mark.parametrize("line", ["not json", "[1, 2]", '{"status":"success"}'])
    def test_unparseable(self, line):
        assert parse_listing_line(line) is None

    def test_bad_size_defaults_to_zero(self):
        record = parse_listing_line('{"key":"x","size":"lots"}')

        assert record.size == 0
        assert record.etag == ""


class TestMcObjectLister:
    def test_satisfies_protocol(self):
        assert isinstance(McObjectLister(), ObjectLister)

    @pytest.mark.asyncio
    async def test_streams_objects(self, make_tool):
        tool = make_tool(
            "\n".join(
                [
                    '[ "$1" = "ls" ] || exit 9',
                    "echo '{\"status\":\"success\",\"type\":\"folder\",\"key\":\"dir/\"}'",
                    "echo '{\"status\":\"success\",\"type\":\"file\",\"key\":\"dir/a\",\"size\":1,\"etag\":\"e1\"}'",
                    "echo '{\"status\":\"success\",\"type\":\"file\",\"key\":\"b\",\"size\":2,\"etag\":\"e2\"}'",
                    "exit 0",
                ]
            )
        )

        records = await collect(McObjectLister(tool))

        assert [(r.key, r.size, r.etag) for r in records] == [("dir/a", 1, "e1"), ("b", 2, "e2")]

    @pytest.mark.asyncio
    async def test_absent_bucket_is_empty(self, make_tool):
        tool = make_tool(
            "echo 'mc: <ERROR> Unable to list folder. Bucket `bucket1` does not exist.' >&2\nexit 1"
        )

        assert await collect(McObjectLister(tool)) == []

    @pytest.mark.asyncio
    async def test_other_failure_raises(self, make_tool):
        tool = make_tool("echo 'mc: <ERROR> Access Denied.' >&2\nexit 1")

        with pytest.raises(ListingError) as exc_info:
            await collect(McObjectLister(tool))

        assert exc_info.value.returncode == 1
        assert "Access Denied" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_record_raises_despite_clean_exit(self, make_tool):
        tool = make_tool(
            "\n".join(
                [
                    "echo '{\"status\":\"success\",\"type\":\"file\",\"key\":\"a\",\"size\":1,\"etag\":\"e1\"}'",
                    "echo '{\"status\":\"error\",\"error\":{\"message\":\"Access Denied.\"}}'",
                    "exit 0",
                ]
            )
        )

        with pytest.raises(ListingError) as exc_info:
            await collect(McObjectLister(tool))

        assert exc_info.value.returncode == 0
        assert "Access Denied" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_oversized_line_is_skipped(self, make_tool):
        tool = make_tool(
            "\n".join(
                [
                    "head -c 2000000 /dev/zero | tr '\\000' x",
                    "echo",
                    "echo '{\"status\":\"success\",\"type\":\"file\",\"key\":\"b\",\"size\":2,\"etag\":\"e2\"}'",
                    "exit 0",
                ]
            )
        )

        records = await collect(McObjectLister(tool))

        assert [(r.key, r.size) for r in records] == [("b", 2)]

    @pytest.mark.asyncio
    async def test_missing_tool_raises(self, tmp_path):
        with pytest.raises(ListingError, match="cannot start"):
            await collect(McObjectLister(str(tmp_path / "no-mc")))


class TestInMemoryObjectLister:
    @pytest.mark.asyncio
    async def test_serves_listing(self):
        records = [ObjectRecord("x", 3, "e")]
        lister = InMemoryObjectLister({"a/bucket1": records})

        assert await collect(lister) == records
        assert lister.calls == ["a/bucket1"]

    @pytest.mark.asyncio
    async def test_unknown_endpoint_is_empty(self):
        assert await collect(InMemoryObjectLister(), Endpoint.parse("z/none")) == []

    @pytest.mark.asyncio
    async def test_fail_raises_after_listing(self):
        lister = InMemoryObjectLister({"a/bucket1": [ObjectRecord("x", 1)]})
        lister.fail("a/bucket1", "Access Denied")
        seen = []

        with pytest.raises(ListingError):
            async for record in lister.list_objects(BUCKET):
                seen.append(record.key)

        assert seen == ["x"]
