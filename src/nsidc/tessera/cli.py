import click

from nsidc.tessera import config
from nsidc.tessera import tessera
from nsidc.tessera.errors import TesseraError
from nsidc.tessera.spatial.grid import TOPOLOGIES


config_option = click.option('-c', '--config', 'config_filename', help='Path to configuration file')
output_option = click.option('-o', '--output', help='Path to the GeoJSON output file', default='-', show_default=True)
topology_option = click.option('-t', '--topology', type=click.Choice(TOPOLOGIES), help='Grid topology (default from the configuration)')
bbox_option = click.option('--bbox', nargs=4, type=float, required=True, metavar='MINX MINY MAXX MAXY', help='Bounding box')
input_argument = click.argument('input_file', type=click.Path(exists=True, dir_okay=False))


def _parse_breaks(ctx, param, value):
    try:
        return [float(b) for b in value.split(',') if b.strip()]
    except ValueError:
        raise click.BadParameter('breaks must be a comma separated list of numbers')


def _configuration(config_filename, overrides=None):
    if config_filename:
        cfg_parser = config.config_parser_factory(config_filename)
    else:
        cfg_parser = config.default_config_parser()
    return config.configuration(cfg_parser, overrides or {})


def _run(configuration, operation, output, *args, read=None, **kwargs):
    """
    Validates the configuration, reads the input GeoJSON (if any) and
    processes it, exiting with status 1 on failure.
    """
    valid, errors = config.validate(configuration)
    if not valid:
        click.echo('\n'.join(errors), err=True)
        exit(1)
    try:
        if read:
            args = (tessera.read_geojson(read),) + args
        tessera.process(configuration, operation, output, *args, **kwargs)
    except (TesseraError, OSError, ValueError) as e:
        click.echo("\nUnable to process data: " + str(e), err=True)
        exit(1)


@click.group(epilog="For detailed help on each command, run: tessera COMMAND --help")
def cli():
    """The tessera utility builds grids, interpolated surfaces,
    contours, triangulations, Voronoi diagrams, hulls and polygons
    from GeoJSON features."""
    pass


@cli.command()
@click.option('-c', '--config', help='Path to configuration file to create or replace')
def init(config):
    """Populates a configuration file based on user input."""
    click.echo(tessera.banner())
    config = tessera.init_config(config)
    click.echo(f'Initialized the tessera configuration file {config}')


@cli.command()
@click.option('-c', '--config', 'config_filename', help='Path to configuration file to display', required=True)
def info(config_filename):
    """Summarizes the contents of a configuration file."""
    click.echo(tessera.banner())
    configuration = _configuration(config_filename)
    configuration.show()


@cli.command()
@config_option
@output_option
@bbox_option
@click.option('-s', '--cell-size', type=float, required=True, help='Cell size (hexagon circumradius for hex grids)')
@topology_option
@click.option('-m', '--mask', type=click.Path(exists=True, dir_okay=False), help='GeoJSON Polygon to keep cells within')
@click.option('--triangles', is_flag=True, help='Split hexagons into triangles')
def grid(config_filename, output, bbox, cell_size, topology, mask, triangles):
    """Generates a point or cell grid over a bounding box."""
    configuration = _configuration(config_filename)
    mask_geometry = None
    if mask:
        try:
            mask_geometry = tessera.read_geojson(mask)[0]
        except (TesseraError, OSError, ValueError, IndexError) as e:
            click.echo("\nUnable to read the mask: " + str(e), err=True)
            exit(1)
    _run(configuration, tessera.generate_grid, output, list(bbox), cell_size,
         topology=topology, mask=mask_geometry, triangles=triangles)


@cli.command()
@config_option
@output_option
@input_argument
@click.option('-s', '--cell-size', type=float, required=True, help='Cell size of the interpolated grid')
@topology_option
@click.option('-p', '--property', 'value_property', help='Sample property holding the value')
@click.option('-w', '--weight', type=float, help='Distance weight exponent')
@click.option('-r', '--result-property', help='Property receiving the interpolated value')
def interpolate(config_filename, output, input_file, cell_size, topology, value_property, weight, result_property):
    """Interpolates point samples onto a grid (inverse distance weighting)."""
    overrides = {
        'value_property': value_property,
        'weight': weight,
        'result_property': result_property,
    }
    configuration = _configuration(config_filename, overrides)
    _run(configuration, tessera.interpolate, output, cell_size, topology=topology, read=input_file)


breaks_option = click.option('-b', '--breaks', required=True, callback=_parse_breaks,
                             help='Comma separated, ascending break values')
z_property_option = click.option('-z', '--z-property', help='Point property holding the value')


@cli.command()
@config_option
@output_option
@input_argument
@breaks_option
@z_property_option
def isolines(config_filename, output, input_file, breaks, z_property):
    """Derives one isoline per break from a regular point grid."""
    configuration = _configuration(config_filename, {'z_property': z_property})
    _run(configuration, tessera.isolines, output, breaks, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
@breaks_option
@z_property_option
def isobands(config_filename, output, input_file, breaks, z_property):
    """Derives one isoband per pair of breaks from a regular point grid."""
    configuration = _configuration(config_filename, {'z_property': z_property})
    _run(configuration, tessera.isobands, output, breaks, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
@click.option('-p', '--property', 'value_property', help='Point property copied to the triangle corners')
def tin(config_filename, output, input_file, value_property):
    """Builds a Delaunay triangulated irregular network from points."""
    configuration = _configuration(config_filename, {'value_property': value_property})
    _run(configuration, tessera.tin, output, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
@bbox_option
def voronoi(config_filename, output, input_file, bbox):
    """Builds Voronoi cells for points, clipped to a bounding box."""
    configuration = _configuration(config_filename)
    _run(configuration, tessera.voronoi_cells, output, list(bbox), read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
@click.option('--concavity', type=float, help='Dig the hull inwards; smaller is more concave')
def convex(config_filename, output, input_file, concavity):
    """Computes the convex hull of every position in the input."""
    configuration = _configuration(config_filename)
    _run(configuration, tessera.convex, output, concavity, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
@click.option('--max-edge', type=float, required=True, help='Longest triangle edge kept in the hull')
def concave(config_filename, output, input_file, max_edge):
    """Computes a concave hull of points from their Delaunay triangles."""
    configuration = _configuration(config_filename)
    _run(configuration, tessera.concave, output, max_edge, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
def polygonize(config_filename, output, input_file):
    """Builds polygons from the faces enclosed by noded lines."""
    configuration = _configuration(config_filename)
    _run(configuration, tessera.polygons, output, read=input_file)


@cli.command()
@config_option
@output_option
@input_argument
def tesselate(config_filename, output, input_file):
    """Splits a polygon into triangles."""
    configuration = _configuration(config_filename)
    _run(configuration, tessera.triangles, output, read=input_file)


if __name__ == "__main__":
    cli()
