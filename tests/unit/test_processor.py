"""Unit tests for the processor-core service."""

import pytest

from dexpipe.framework.config import StreamsConfig
from dexpipe.framework.consumer import StreamAcknowledger, StreamRecord
from dexpipe.framework.dispatcher import JsonEventDispatcher
from dexpipe.framework.producer import StreamProducer
from dexpipe.utils.errors import ConfigurationError, ValidationError
from services.processor_core.app.main import BlockHandler
from services.processor_core.app.parser import ParsedBlock, load_block_parser, parse_block


def fake_parser(block):
    """Decodes the test block shape: events listed under ``txs``."""
    if block.get("height") == -1:
        raise KeyError("txs")
    parsed = {"pools": [], "swaps": [], "liqs": []}
    for tx in block.get("txs", []):
        parsed[tx["kind"]].append({"height": block["height"], **tx["body"]})
    return parsed


async def async_parser(block):
    return ParsedBlock(swaps=[{"height": block["height"]}])


class StaticParser:
    def parse(self, block):
        return ParsedBlock()


NOT_CALLABLE = 42


class TestParsedBlock:

    def test_coerce_accepts_liqs_alias(self):
        parsed = ParsedBlock.coerce({"pools": [{"a": 1}], "liqs": [{"b": 2}]})

        assert parsed.pools == [{"a": 1}]
        assert parsed.swaps == []
        assert parsed.liquidity == [{"b": 2}]
        assert len(parsed) == 2

    def test_coerce_rejects_other_types(self):
        with pytest.raises(ValidationError):
            ParsedBlock.coerce([1, 2, 3])


class TestParseBlock:

    @pytest.mark.asyncio
    async def test_sync_and_async_parsers(self):
        assert len(await parse_block(fake_parser, {"height": 1, "txs": []})) == 0
        assert (await parse_block(async_parser, {"height": 5})).swaps == [{"height": 5}]

    @pytest.mark.asyncio
    async def test_decoder_failure_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            await parse_block(fake_parser, {"height": -1})
        assert exc_info.value.field == "block"


class TestLoadBlockParser:

    def test_loads_function(self):
        parser = load_block_parser("tests.unit.test_processor:fake_parser")
        assert parser({"height": 1}) == {"pools": [], "swaps": [], "liqs": []}

    def test_class_is_instantiated_and_parse_used(self):
        parser = load_block_parser("tests.unit.test_processor:StaticParser")
        assert parser({}) == ParsedBlock()

    @pytest.mark.parametrize(
        "path",
        ["", "no_colon_here", "tests.unit.missing_module:parse", "tests.unit.test_processor:missing"],
    )
    def test_bad_paths(self, path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_block_parser(path)
        assert exc_info.value.config_key == "DEXPIPE_BLOCK_PARSER"

    def test_not_callable(self):
        with pytest.raises(ConfigurationError):
            load_block_parser("tests.unit.test_processor:NOT_CALLABLE")


class TestBlockHandler:

    @pytest.mark.asyncio
    async def test_emits_to_event_streams(self, mock_redis_client):
        streams = StreamsConfig()
        handler = BlockHandler(StreamProducer(mock_redis_client), streams, fake_parser)

        await handler.handle({
            "height": 100,
            "txs": [
                {"kind": "pools", "body": {"pair_contract": "zig1pair"}},
                {"kind": "swaps", "body": {"msg_index": 0}},
                {"kind": "swaps", "body": {"msg_index": 1}},
                {"kind": "liqs", "body": {"action": "provide"}},
            ],
        })

        assert mock_redis_client.payloads(streams.new_pool) == [{"height": 100, "pair_contract": "zig1pair"}]
        assert mock_redis_client.payloads(streams.swap) == [
            {"height": 100, "msg_index": 0},
            {"height": 100, "msg_index": 1},
        ]
        assert mock_redis_client.payloads(streams.liquidity) == [{"height": 100, "action": "provide"}]
        assert handler.blocks_parsed == 1
        assert handler.events_emitted == 4

    @pytest.mark.asyncio
    async def test_undecodable_block_is_skipped_and_acked(self, mock_redis_client):
        streams = StreamsConfig()
        handler = BlockHandler(StreamProducer(mock_redis_client), streams, fake_parser)
        dispatcher = JsonEventDispatcher(streams.raw_blocks, handler)

        await mock_redis_client.create_group(streams.raw_blocks, "processor", start_id="0")
        await mock_redis_client.xadd(streams.raw_blocks, {"j": '{"height": -1}'})
        await mock_redis_client.xadd(
            streams.raw_blocks,
            {"j": '{"height": 2, "txs": [{"kind": "swaps", "body": {"msg_index": 0}}]}'},
        )
        entries = await mock_redis_client.xreadgroup("processor", "p1", streams.raw_blocks, count=10, block_ms=10)
        records = [StreamRecord(id=entry_id, fields=fields) for entry_id, fields in entries]

        await dispatcher(records, StreamAcknowledger(mock_redis_client, streams.raw_blocks, "processor"))

        assert dispatcher.events_skipped == 1
        assert mock_redis_client.payloads(streams.swap) == [{"height": 2, "msg_index": 0}]
        assert mock_redis_client.pending_ids(streams.raw_blocks, "processor") == []
