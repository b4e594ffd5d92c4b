import configparser
import dataclasses
import datetime as dt
import json
import logging
import os.path
import sys
from typing import Callable, Optional

from funcy import decorator, partial, rcompose
from pyfiglet import Figlet
from rich.prompt import Confirm, Prompt

from nsidc.tessera import config
from nsidc.tessera import constants
from nsidc.tessera.errors import InvalidParameter
from nsidc.tessera.models import FeatureCollection, as_feature_collection
from nsidc.tessera.spatial import (
    contour,
    grid,
    hull,
    interpolation,
    polygonize,
    tesselate,
    triangulation,
    voronoi,
)


LOGGER_NAME = 'nsidc.tessera'
CONSOLE_FORMAT = "%(message)s"
LOGFILE_FORMAT = "%(asctime)s|%(levelname)s|%(name)s|%(message)s"


def init_logging(configuration: config.Config):
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # stdout is reserved for GeoJSON output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    logfile_handler = logging.FileHandler(configuration.log_file, "w")
    logfile_handler.setLevel(logging.DEBUG)
    logfile_handler.setFormatter(logging.Formatter(LOGFILE_FORMAT))
    logger.addHandler(logfile_handler)


@decorator
def log(call):
    logging.getLogger(LOGGER_NAME).info(call._func.__name__)
    return call()


def banner():
    """
    Displays the name of this utility using incredible ASCII-art.
    """
    f = Figlet(font='slant')
    return f.renderText('tessera')


def init_config(configuration_file):
    """
    Prompts the user for configuration values and then creates a valid configuration file.
    """
    print("""This utility will create a tessera configuration file by prompting """
          """you for values for each of the configuration parameters.""")
    print()
    if not configuration_file:
        configuration_file = Prompt.ask("configuration file name", default="tessera.ini")
    else:
        print(f'Creating configuration file {configuration_file}')
        print()

    if os.path.exists(configuration_file):
        print(f'WARNING: The {configuration_file} already exists.')
        overwrite = Confirm.ask("Overwrite?")
        if not overwrite:
            print('Not overwriting existing file. Exiting.')
            exit(1)

    cfg_parser = configparser.ConfigParser()

    print()
    print(f'{constants.SETTINGS_SECTION_NAME} Parameters')
    print('--------------------------------------------------')
    cfg_parser.add_section(constants.SETTINGS_SECTION_NAME)
    cfg_parser.set(constants.SETTINGS_SECTION_NAME, "epsilon", Prompt.ask("Coordinate tolerance", default=str(constants.DEFAULT_EPSILON)))
    cfg_parser.set(constants.SETTINGS_SECTION_NAME, "log_file", Prompt.ask("Log file", default=constants.DEFAULT_LOG_FILE))

    print()
    print(f'{constants.INTERPOLATION_SECTION_NAME} Parameters')
    print('--------------------------------------------------')
    cfg_parser.add_section(constants.INTERPOLATION_SECTION_NAME)
    cfg_parser.set(constants.INTERPOLATION_SECTION_NAME, "value_property", Prompt.ask("Sample value property (blank for the third coordinate)", default=constants.DEFAULT_VALUE_PROPERTY))
    cfg_parser.set(constants.INTERPOLATION_SECTION_NAME, "result_property", Prompt.ask("Result property", default=constants.DEFAULT_RESULT_PROPERTY))
    cfg_parser.set(constants.INTERPOLATION_SECTION_NAME, "weight", Prompt.ask("Distance weight exponent", default=str(constants.DEFAULT_WEIGHT)))
    cfg_parser.set(constants.INTERPOLATION_SECTION_NAME, "topology", Prompt.ask("Grid topology", choices=list(grid.TOPOLOGIES), default=constants.DEFAULT_TOPOLOGY))

    print()
    print(f'{constants.CONTOUR_SECTION_NAME} Parameters')
    print('--------------------------------------------------')
    cfg_parser.add_section(constants.CONTOUR_SECTION_NAME)
    cfg_parser.set(constants.CONTOUR_SECTION_NAME, "z_property", Prompt.ask("Contour value property", default=constants.DEFAULT_Z_PROPERTY))

    print()
    print(f'Saving new configuration: {configuration_file}')
    with open(configuration_file, "tw") as file:
        cfg_parser.write(file)

    return configuration_file


# -------------------------------------------------------------------
# GeoJSON input and output
# -------------------------------------------------------------------

def read_geojson(path: str) -> FeatureCollection:
    """
    Reads a GeoJSON file (a FeatureCollection, Feature or bare geometry).
    """
    with open(path) as file:
        return as_feature_collection(json.load(file))


def write_geojson(collection: FeatureCollection, output: Optional[str] = None) -> None:
    """
    Writes a FeatureCollection as GeoJSON to 'output', or to stdout when it
    is None or '-'.
    """
    text = json.dumps(collection.to_geojson())
    if output in (None, '-'):
        print(text)
        return
    with open(output, "tw") as file:
        file.write(text)


# -------------------------------------------------------------------
# Operations
# -------------------------------------------------------------------

def _optional(value):
    return value if value else None


@log
def generate_grid(configuration: config.Config, bbox, cell_size, topology=None, mask=None, triangles=False):
    return grid.generate(bbox, cell_size, topology or configuration.topology,
                         mask=mask, triangles=triangles, epsilon=configuration.epsilon)


@log
def interpolate(configuration: config.Config, samples, cell_size, topology=None, mask=None):
    return interpolation.interpolate_to_grid(
        samples,
        cell_size,
        topology or configuration.topology,
        _optional(configuration.value_property),
        configuration.weight,
        configuration.result_property,
        mask=mask,
    )


@log
def isolines(configuration: config.Config, lattice, breaks):
    return contour.isolines(lattice, breaks, _optional(configuration.z_property),
                            epsilon=configuration.epsilon)


@log
def isobands(configuration: config.Config, lattice, breaks):
    return contour.isobands(lattice, breaks, _optional(configuration.z_property),
                            epsilon=configuration.epsilon)


@log
def tin(configuration: config.Config, points):
    return triangulation.triangulate(points, _optional(configuration.value_property),
                                     configuration.epsilon)


@log
def voronoi_cells(configuration: config.Config, points, bbox):
    return voronoi.build(points, bbox, configuration.epsilon)


@log
def convex(configuration: config.Config, features, concavity=None):
    return FeatureCollection([hull.convex_hull(features, concavity, configuration.epsilon)])


@log
def concave(configuration: config.Config, points, max_edge):
    result = hull.concave_hull(points, max_edge, configuration.epsilon)
    return FeatureCollection([] if result is None else [result])


@log
def polygons(configuration: config.Config, lines):
    return polygonize.polygonize(lines, configuration.epsilon)


@log
def triangles(configuration: config.Config, polygon):
    collection = as_feature_collection(polygon)
    if len(collection) != 1:
        raise InvalidParameter(
            f"Tesselation needs exactly one Polygon feature, got {len(collection)}"
        )
    return tesselate.tesselate(collection[0])


# -------------------------------------------------------------------
# Processing pipeline
# -------------------------------------------------------------------

@dataclasses.dataclass
class Record:
    operation: str
    output: Optional[str]
    startDatetime: Optional[dt.datetime] = None
    endDatetime: Optional[dt.datetime] = None
    result: Optional[FeatureCollection] = None


def start_record(record: Record) -> Record:
    return dataclasses.replace(record, startDatetime=dt.datetime.now())


def run_operation(operation: Callable, record: Record) -> Record:
    return dataclasses.replace(record, result=operation())


def write_record(record: Record) -> Record:
    write_geojson(record.result, record.output)
    return record


def end_record(record: Record) -> Record:
    return dataclasses.replace(record, endDatetime=dt.datetime.now())


def summarize(record: Record) -> Record:
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Processing Summary")
    logger.info("==================")
    logger.info(f"Operation: {record.operation}")
    logger.info(f"Features: {len(record.result)}")
    logger.info(f"Output: {record.output or 'stdout'}")
    logger.info(f"Start: {record.startDatetime}")
    logger.info(f"End: {record.endDatetime}")
    return record


def process(configuration: config.Config, operation: Callable, output: Optional[str], *args, **kwargs) -> Record:
    """
    Runs one operation with the configuration and writes its result as
    GeoJSON. Engine errors propagate to the caller.
    """
    init_logging(configuration)
    pipeline = rcompose(
        start_record,
        partial(run_operation, partial(operation, configuration, *args, **kwargs)),
        write_record,
        end_record,
        summarize,
    )
    return pipeline(Record(operation.__name__, output))
