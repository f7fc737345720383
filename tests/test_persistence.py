"""保存・読み込み（バイナリ / JSON）のテスト"""

import gzip
import json
import math
import pickle

import numpy as np
import pytest

from mo_gbm import (
    BoosterCollection,
    BoosterIOError,
    DeserializeError,
    SerializeError,
    SingleOutputBooster,
)
from mo_gbm.models.booster_components import persistence


@pytest.fixture
def fitted_collection(regression_data):
    X, y = regression_data
    X = X.copy()
    X[::6, 2] = np.nan
    collection = BoosterCollection.from_params(
        2,
        objective="SquaredLoss",
        monotone_constraints={0: 1},
        terminate_missing_features={3},
        missing_node_treatment="AssignToParent",
        create_missing_branch=True,
    )
    collection.fit(X, y, budget=0.5)
    collection.insert_metadata("dataset", "synthetic")
    return collection, X


def test_binary_round_trip(fitted_collection, tmp_path):
    collection, X = fitted_collection
    path = str(tmp_path / "model.mogbm")
    collection.save_booster(path)

    loaded = BoosterCollection.load_booster(path)
    np.testing.assert_array_equal(loaded.predict(X), collection.predict(X))
    assert loaded.get_params() == collection.get_params()
    assert loaded.get_metadata("dataset") == "synthetic"
    np.testing.assert_array_equal(loaded.number_of_trees, collection.number_of_trees)
    np.testing.assert_array_equal(loaded.base_score, collection.base_score)


def test_json_round_trip(fitted_collection):
    collection, X = fitted_collection
    text = collection.json_dump()
    document = json.loads(text)
    assert document["format"] == "mo_gbm"
    assert document["format_version"] == 1
    assert document["kind"] == "multi_output"
    assert document["n_boosters"] == 2
    assert len(document["boosters"]) == 2
    assert document["metadata"] == {"dataset": "synthetic"}

    loaded = BoosterCollection.from_json(text)
    np.testing.assert_array_equal(loaded.predict(X), collection.predict(X))
    assert loaded.get_params() == collection.get_params()


def test_unfitted_collection_round_trip():
    collection = BoosterCollection.from_params(3, objective="QuantileLoss")
    loaded = BoosterCollection.from_json(collection.json_dump())
    assert loaded.n_boosters == 3
    assert not loaded.is_fitted
    assert loaded.get_params() == collection.get_params()


def test_unknown_format_version(fitted_collection):
    collection, _ = fitted_collection
    document = collection.to_document()
    document["format_version"] = 99
    with pytest.raises(DeserializeError):
        BoosterCollection.from_document(document)
    with pytest.raises(DeserializeError):
        BoosterCollection.from_json(json.dumps(document))


def test_wrong_kind_and_garbage():
    single = SingleOutputBooster()
    with pytest.raises(DeserializeError):
        BoosterCollection.from_json(single.json_dump())
    with pytest.raises(DeserializeError):
        BoosterCollection.from_json("{not json")
    with pytest.raises(DeserializeError):
        BoosterCollection.from_json("[1, 2, 3]")


def test_booster_count_mismatch(fitted_collection):
    collection, _ = fitted_collection
    document = collection.to_document()
    document["boosters"] = document["boosters"][:1]
    with pytest.raises(DeserializeError):
        BoosterCollection.from_document(document)


def test_corrupted_tree(fitted_collection):
    collection, _ = fitted_collection
    document = persistence.loads_document(collection.json_dump())
    document["boosters"][0]["trees"][0]["nodes"] = []
    with pytest.raises(DeserializeError):
        BoosterCollection.from_document(document)


def test_binary_file_without_header(tmp_path):
    path = tmp_path / "other.mogbm"
    path.write_bytes(gzip.compress(json.dumps({"weights": [1, 2, 3]}).encode("utf-8")))
    with pytest.raises(DeserializeError):
        BoosterCollection.load_booster(str(path))


def test_binary_file_is_not_unpickled(tmp_path):
    """pickle 形式のファイルは読み込まれず DeserializeError になる"""
    path = tmp_path / "model.pkl"
    path.write_bytes(pickle.dumps({"format": "mo_gbm"}))
    with pytest.raises(DeserializeError):
        BoosterCollection.load_booster(str(path))

    path.write_bytes(b"")
    with pytest.raises(DeserializeError):
        BoosterCollection.load_booster(str(path))


def test_binary_file_is_compressed_json(fitted_collection, tmp_path):
    collection, _ = fitted_collection
    path = tmp_path / "model.mogbm"
    collection.save_booster(str(path))
    document = json.loads(gzip.decompress(path.read_bytes()).decode("utf-8"))
    assert document["kind"] == "multi_output"
    assert document["metadata"] == {"dataset": "synthetic"}


def _reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


def test_json_has_no_non_finite_literals(fitted_collection):
    collection, X = fitted_collection
    assert np.isnan(collection.config.missing)
    text = collection.json_dump()
    document = json.loads(text, parse_constant=_reject_constant)
    assert document["config"]["missing"] == {"_kind": "_float", "v": "NaN"}

    loaded = BoosterCollection.from_json(text)
    assert np.isnan(loaded.config.missing)
    np.testing.assert_array_equal(loaded.predict(X), collection.predict(X))


def test_non_finite_split_values_survive_json():
    X = np.array([[np.nan], [np.nan], [1.0], [2.0], [np.nan], [3.0]] * 10)
    y = np.column_stack([np.where(np.isnan(X[:, 0]), 5.0, -5.0)] * 2)
    collection = BoosterCollection.from_params(2, objective="SquaredLoss")
    collection.fit(X, y, budget=0.5)

    text = collection.json_dump()
    json.loads(text, parse_constant=_reject_constant)
    loaded = BoosterCollection.from_json(text)
    np.testing.assert_array_equal(loaded.predict(X), collection.predict(X))


def test_encoded_float_round_trip():
    document = {"values": [math.inf, -math.inf, 1.5, np.float64("nan")], "name": "NaN"}
    restored = persistence.loads_document(persistence.dumps_document(document))
    assert restored["values"][:3] == [math.inf, -math.inf, 1.5]
    assert math.isnan(restored["values"][3])
    assert restored["name"] == "NaN"


def test_io_errors(fitted_collection, tmp_path):
    collection, _ = fitted_collection
    with pytest.raises(BoosterIOError):
        BoosterCollection.load_booster(str(tmp_path / "does-not-exist.mogbm"))
    with pytest.raises(BoosterIOError):
        collection.save_booster(str(tmp_path / "missing-dir" / "model.mogbm"))
    with pytest.raises(OSError):
        BoosterCollection.load_booster(str(tmp_path / "does-not-exist.mogbm"))


def test_unserializable_document():
    with pytest.raises(SerializeError):
        persistence.dumps_document({"value": object()})
