"""
geoingest - geospatial upload ingestion and normalization.

This package turns heterogeneous geospatial uploads (delimited text,
spreadsheets, shapefiles, GeoJSON and KML) into canonical WGS84 feature
collections ready to be displayed as map layers.
"""

__version__ = "0.1.0"
