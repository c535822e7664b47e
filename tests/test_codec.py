"""
test_codec.py — msgpack converter for workflow and activity payloads.
"""

from datetime import datetime, timezone

import msgpack
import pytest

from autonomy.models.catalog import Symptom, SymptomSource
from autonomy.models.metric import Metric
from autonomy.workflows import codec


class TestCodec:
    def test_models_come_back_as_models(self):
        metric = Metric(score=71.5, last_update=1590000000)
        metric.details.symptoms.last_spike_list = ["cough"]

        decoded = codec.decode(codec.encode(metric))

        assert isinstance(decoded, Metric)
        assert decoded == metric

    def test_nested_models_in_lists(self):
        symptoms = [Symptom(id="fever", name="Fever", source=SymptomSource.OFFICIAL, weight=3)]
        account, poi_id, decoded = codec.decode_args(codec.encode_args(("a1", "", symptoms)))

        assert (account, poi_id) == ("a1", "")
        assert decoded == symptoms

    def test_sets(self):
        assert codec.decode(codec.encode({"b", "a"})) == {"a", "b"}

    def test_naive_datetimes_are_utc(self):
        decoded = codec.decode(codec.encode(datetime(2020, 5, 20, 12, 0)))
        assert decoded == datetime(2020, 5, 20, 12, 0, tzinfo=timezone.utc)

    def test_encoded_payloads_are_copies(self):
        original = {"items": [1, 2]}
        decoded = codec.decode(codec.encode(original))
        decoded["items"].append(3)
        assert original == {"items": [1, 2]}

    def test_unencodable_value_raises(self):
        with pytest.raises(codec.CodecError):
            codec.encode(object())

    def test_foreign_types_are_refused(self):
        body = msgpack.packb(["os.path:join", {}], use_bin_type=True)
        payload = msgpack.packb(msgpack.ExtType(codec.EXT_MODEL, body), use_bin_type=True)
        with pytest.raises(codec.CodecError):
            codec.decode(payload)
