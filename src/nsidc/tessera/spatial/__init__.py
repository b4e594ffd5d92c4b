"""
Spatial tessellation and field-interpolation engine for tessera.

Each module covers one family of operations:

1. **grid.generate**: point, square, triangle and hex lattices over a bounding box
2. **interpolation.interpolate**: inverse distance weighting of point samples
3. **contour.isolines / contour.isobands**: contours of a regular point lattice
4. **triangulation.triangulate**: Delaunay TIN of scattered points
5. **voronoi.build**: Voronoi cells clipped to a bounding box
6. **hull.convex_hull / hull.concave_hull**: hulls of point sets
7. **polygonize.polygonize**: polygons from noded line segments
8. **tesselate.tesselate**: ear-clipping triangulation of a polygon

Shared tolerance, orientation and ring-tracing helpers live in spatial_utils.
"""

__all__ = [
    "contour",
    "grid",
    "hull",
    "interpolation",
    "polygonize",
    "spatial_utils",
    "tesselate",
    "triangulation",
    "voronoi",
]
