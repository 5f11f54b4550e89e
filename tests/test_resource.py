"""Tests for define_resource leaf state managers."""

import asyncio

import pytest

from cascadex import NOT_READY, Atom, Runtime, Status, define_resource


class FakeApi:
    """Records fetches; each one resolves when the test says so."""

    def __init__(self):
        self.requests = []
        self.futures = []

    def fetch(self, fields):
        self.requests.append(fields)
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return future


class TestUnconfigured:
    def test_no_fetch_without_configuration(self):
        calls = []
        record = define_resource(lambda fields: calls.append(fields), name="record")
        instance = record()
        assert instance.value.status == Status.UNCONFIGURED
        assert instance.value.data is None
        assert instance.value.error is None
        assert calls == []

    def test_empty_mapping_means_not_ready(self):
        calls = []
        record = define_resource(lambda fields: calls.append(fields))
        assert record({}).value.status == "unconfigured"
        assert record(NOT_READY).value.status == "unconfigured"
        assert calls == []


class TestLoading:
    @pytest.mark.asyncio
    async def test_loading_then_loaded(self):
        async def fetch_record(fields):
            await asyncio.sleep(0)
            return {"id": fields["record_id"], "name": "Acme"}

        record = define_resource(fetch_record)
        instance = record({"record_id": "001"})
        assert instance.value.status == "loading"
        assert instance.value.data is None

        await instance.runtime.settled()
        assert instance.value.status == "loaded"
        assert instance.value.data == {"id": "001", "name": "Acme"}
        assert instance.value.error is None

    @pytest.mark.asyncio
    async def test_fetch_failure(self):
        async def fetch_record(fields):
            raise PermissionError("insufficient access")

        record = define_resource(fetch_record)
        instance = record({"record_id": "001"})
        await instance.runtime.settled()
        assert instance.value.status == "error"
        assert isinstance(instance.value.error, PermissionError)
        assert instance.value.data is None

    def test_synchronous_fetch(self):
        record = define_resource(lambda fields: {"echo": fields})
        instance = record({"record_id": "001"})
        assert instance.value.status == "loaded"
        assert instance.value.data == {"echo": {"record_id": "001"}}

    @pytest.mark.asyncio
    async def test_refresh_reloads(self):
        api = FakeApi()
        record = define_resource(api.fetch)
        instance = record({"record_id": "001"})
        api.futures[0].set_result("v1")
        await instance.runtime.settled()
        assert instance.value.data == "v1"

        instance.value.refresh()
        assert instance.value.status == "loading"
        assert instance.value.data is None
        assert api.requests == [{"record_id": "001"}, {"record_id": "001"}]

        api.futures[1].set_result("v2")
        await instance.runtime.settled()
        assert instance.value.status == "loaded"
        assert instance.value.data == "v2"


class TestConfigurationChanges:
    @pytest.mark.asyncio
    async def test_follows_a_configuration_cell(self):
        api = FakeApi()
        record = define_resource(api.fetch)
        runtime = Runtime(name="page")
        config = Atom(runtime, NOT_READY)
        with runtime.active():
            instance = record(config)

        assert instance.runtime is runtime
        assert instance.value.status == "unconfigured"

        config.set({"record_id": "001"})
        assert instance.value.status == "loading"
        api.futures[0].set_result("first")
        await runtime.settled()
        assert instance.value.data == "first"

        config.set({"record_id": "002"})
        assert instance.value.status == "loading"
        assert instance.value.data is None

        config.set(NOT_READY)
        assert instance.value.status == "unconfigured"
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_superseded_fetch_is_ignored(self):
        api = FakeApi()
        record = define_resource(api.fetch)
        runtime = Runtime(name="page")
        config = Atom(runtime, {"record_id": "001"})
        with runtime.active():
            instance = record(config)

        config.set({"record_id": "002"})
        api.futures[1].set_result("record 002")
        await asyncio.sleep(0)
        api.futures[0].set_result("record 001")
        await runtime.settled()

        assert instance.value.status == "loaded"
        assert instance.value.data == "record 002"

    @pytest.mark.asyncio
    async def test_never_unconfigured_with_an_error(self):
        async def fetch_record(fields):
            raise LookupError(fields["record_id"])

        record = define_resource(fetch_record)
        runtime = Runtime(name="page")
        config = Atom(runtime, {"record_id": "001"})
        with runtime.active():
            instance = record(config)
        await runtime.settled()
        assert instance.value.status == "error"

        config.set(NOT_READY)
        assert instance.value.status == "unconfigured"
        assert instance.value.error is None
