import datetime as dt
import json
import logging
from unittest.mock import patch

import pytest
from funcy import identity

from nsidc.tessera import config, tessera
from nsidc.tessera.errors import InvalidParameter
from nsidc.tessera.models import FeatureCollection, feature

# Unit tests for the 'tessera' module functions.
#
# The test boundary is the tessera module's interface with the filesystem and
# the config & spatial modules, so in addition to testing the tessera module's
# behavior, the tests should exercise those modules through the operations and
# assert that tessera functions correctly handle their return values and let
# any exceptions they raise propagate.


@pytest.fixture
def fake_config(tmp_path):
    return config.Config(
        1e-9,
        str(tmp_path / "tessera.log"),
        "temp",
        "value",
        2.0,
        "point",
        "elevation",
    )


@pytest.fixture
def samples():
    return FeatureCollection([
        feature("Point", (0, 0), {"temp": 10}),
        feature("Point", (10, 0), {"temp": 20}),
        feature("Point", (0, 10), {"temp": 30}),
    ])


@pytest.fixture
def square_lines():
    return FeatureCollection([
        feature("LineString", [(0, 0), (4, 0), (4, 4)]),
        feature("LineString", [(4, 4), (0, 4), (0, 0)]),
    ])


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(tessera.LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_banner():
    assert len(tessera.banner()) > 0


def test_read_geojson(tmp_path):
    path = tmp_path / "points.geojson"
    path.write_text(json.dumps({"type": "Point", "coordinates": [1, 2]}))
    result = tessera.read_geojson(str(path))
    assert len(result) == 1
    assert result[0].geometry.coordinates == (1.0, 2.0)


def test_write_geojson_to_file(tmp_path, samples):
    path = tmp_path / "out.geojson"
    tessera.write_geojson(samples, str(path))
    written = json.loads(path.read_text())
    assert written["type"] == "FeatureCollection"
    assert len(written["features"]) == 3


@pytest.mark.parametrize("output", [None, "-"])
def test_write_geojson_to_stdout(capsys, samples, output):
    tessera.write_geojson(samples, output)
    written = json.loads(capsys.readouterr().out)
    assert written["features"][0]["properties"] == {"temp": 10}


def test_init_logging_writes_log_file(fake_config):
    tessera.init_logging(fake_config)
    logging.getLogger(tessera.LOGGER_NAME).debug("hello")
    logger = logging.getLogger(tessera.LOGGER_NAME)
    assert len(logger.handlers) == 2
    for handler in logger.handlers:
        handler.flush()
    with open(fake_config.log_file) as file:
        assert "hello" in file.read()


def test_init_logging_replaces_handlers(fake_config):
    tessera.init_logging(fake_config)
    tessera.init_logging(fake_config)
    assert len(logging.getLogger(tessera.LOGGER_NAME).handlers) == 2


def test_generate_grid_uses_configured_topology(fake_config):
    result = tessera.generate_grid(fake_config, [0, 0, 2, 2], 1)
    assert len(result) == 9


def test_generate_grid_topology_argument_wins(fake_config):
    result = tessera.generate_grid(fake_config, [0, 0, 2, 2], 1, topology="square")
    assert len(result) == 4


def test_interpolate_uses_configuration(fake_config, samples):
    result = tessera.interpolate(fake_config, samples, 5)
    assert len(result) == 9
    assert result[0].properties["value"] == 10.0


def test_interpolate_empty_value_property_uses_third_coordinate(fake_config):
    cfg = config.Config(1e-9, fake_config.log_file, "", "z", 1.0, "point", "elevation")
    samples = [feature("Point", (0, 0, 4)), feature("Point", (2, 0, 8))]
    result = tessera.interpolate(cfg, samples, 1)
    assert [f.properties["z"] for f in result] == [4.0, pytest.approx(6.0), 8.0]


def test_convex_returns_one_feature(fake_config, samples):
    result = tessera.convex(fake_config, samples)
    assert len(result) == 1


def test_concave_without_hull_is_empty(fake_config, samples):
    result = tessera.concave(fake_config, samples, 1)
    assert len(result) == 0


def test_polygons(fake_config, square_lines):
    result = tessera.polygons(fake_config, square_lines)
    assert len(result) == 1


def test_triangles_needs_one_feature(fake_config):
    polygon = feature("Polygon", [[(0, 0), (1, 0), (0, 1)]])
    with pytest.raises(InvalidParameter):
        tessera.triangles(fake_config, FeatureCollection([polygon, polygon]))


def test_triangles(fake_config):
    polygon = feature("Polygon", [[(0, 0), (2, 0), (2, 2), (0, 2)]])
    result = tessera.triangles(fake_config, FeatureCollection([polygon]))
    assert len(result) == 2


@patch("nsidc.tessera.tessera.dt.datetime")
def test_start_record(mock_datetime):
    now = dt.datetime(2099, 7, 4, 10, 11, 12)
    mock_datetime.now.return_value = now
    record = tessera.Record("tin", "out.geojson")

    actual = tessera.start_record(record)

    assert actual.operation == "tin"
    assert actual.startDatetime == now
    assert actual.endDatetime is None


@patch("nsidc.tessera.tessera.dt.datetime")
def test_end_record(mock_datetime):
    now = dt.datetime(2099, 7, 4, 10, 11, 12)
    mock_datetime.now.return_value = now
    record = tessera.Record("tin", "out.geojson", startDatetime=now)

    actual = tessera.end_record(record)

    assert actual.startDatetime == now
    assert actual.endDatetime == now


def test_run_operation():
    record = tessera.Record("identity", None)
    collection = FeatureCollection()

    actual = tessera.run_operation(lambda: identity(collection), record)

    assert actual.result is collection
    assert record.result is None


def test_process_writes_output(fake_config, square_lines, tmp_path):
    output = tmp_path / "polygons.geojson"

    record = tessera.process(fake_config, tessera.polygons, str(output), square_lines)

    assert record.operation == "polygons"
    assert len(record.result) == 1
    assert record.startDatetime <= record.endDatetime
    written = json.loads(output.read_text())
    assert written["features"][0]["geometry"]["type"] == "Polygon"


def test_process_logs_summary(fake_config, square_lines, tmp_path):
    tessera.process(fake_config, tessera.polygons, str(tmp_path / "out.geojson"), square_lines)
    for handler in logging.getLogger(tessera.LOGGER_NAME).handlers:
        handler.flush()
    with open(fake_config.log_file) as file:
        text = file.read()
    assert "Processing Summary" in text
    assert "Features: 1" in text


def test_process_propagates_errors(fake_config, tmp_path):
    output = tmp_path / "never.geojson"
    with pytest.raises(InvalidParameter):
        tessera.process(fake_config, tessera.polygons, str(output), [feature("Point", (0, 0))])
    assert not output.exists()
