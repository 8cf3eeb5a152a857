"""
Shapefile assembler.

Groups the co-named components of a shapefile upload (.shp, .shx, .dbf,
.prj, .cpg), reads them with pyshp and hands the resulting GeoJSON
features to the structured-geometry normalizer.
"""

import io
import logging
import struct
from dataclasses import dataclass, field
from itertools import zip_longest
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import shapefile

from geoingest.core.crs.detector import CRSResolver
from geoingest.core.crs.transformer import CoordinateTransformer
from geoingest.core.encoding.decoder import (
    decode_text,
    detect_bytes_encoding,
    encoding_for_codepage,
    recover_text,
)
from geoingest.core.errors import NoFeaturesError, ShapefileError
from geoingest.core.normalizers.structured import GeoJSONNormalizer
from geoingest.models.feature import FeatureCollection
from geoingest.models.upload import UploadedFile

logger = logging.getLogger(__name__)

SHAPEFILE_EXTENSIONS = (".shp", ".shx", ".dbf", ".prj", ".cpg")

# Byte-preserving codec used to read attribute tables before recovery
_RAW_ATTRIBUTE_ENCODING = "latin-1"

_PYSHP_ERRORS = (shapefile.ShapefileException, struct.error, ValueError, IndexError, OSError)


@dataclass
class ShapefileGroup:
    """
    Components of one shapefile dataset, matched by base name.

    Attributes:
        base_name: Shared file stem
        shp: Geometry component
        shx: Index component
        dbf: Attribute table
        prj: Projection definition text
        cpg: Code page declaration text
        source_files: Names of the uploaded files in the group
        component_sizes: Size in bytes of each uploaded file, by name
    """

    base_name: str
    shp: Optional[bytes] = None
    shx: Optional[bytes] = None
    dbf: Optional[bytes] = None
    prj: Optional[str] = None
    cpg: Optional[str] = None
    source_files: List[str] = field(default_factory=list)
    component_sizes: Dict[str, int] = field(default_factory=dict)

    def add(self, upload: UploadedFile) -> None:
        """Attach one component file."""
        extension = upload.extension
        if extension in (".prj", ".cpg"):
            setattr(self, extension[1:], decode_text(upload.content).text.strip())
        else:
            setattr(self, extension[1:], upload.content)
        self.source_files.append(upload.name)
        self.component_sizes[upload.name] = upload.size


def group_shapefile_components(
    files: Iterable[UploadedFile],
) -> Tuple[List[ShapefileGroup], List[UploadedFile]]:
    """
    Split an upload batch into shapefile groups and other files.

    Components are grouped by case-insensitive file stem.

    Args:
        files: Uploaded files

    Returns:
        Tuple of (shapefile groups in first-seen order, remaining files)
    """
    groups: Dict[str, ShapefileGroup] = {}
    others: List[UploadedFile] = []
    for upload in files:
        if upload.extension not in SHAPEFILE_EXTENSIONS:
            others.append(upload)
            continue
        key = upload.stem.lower()
        if key not in groups:
            groups[key] = ShapefileGroup(base_name=upload.stem)
        groups[key].add(upload)
    return list(groups.values()), others


def _listify(value: Any) -> Any:
    """Turn pyshp's nested tuples into GeoJSON lists."""
    if isinstance(value, (list, tuple)):
        return [_listify(item) for item in value]
    return value


def _geometry_of(shape: Any) -> Optional[Dict[str, Any]]:
    if shape is None or shape.shapeType == shapefile.NULL:
        return None
    interface = shape.__geo_interface__
    return {"type": interface["type"], "coordinates": _listify(interface["coordinates"])}


class ShapefileAssembler:
    """
    Builds a canonical FeatureCollection from a shapefile group.

    Attribute strings are read byte-for-byte as Latin-1 and then recovered
    with the encoding declared by the .cpg file, or detected from the
    attribute bytes when there is none. The encoding used by the last
    ``assemble`` call is kept in ``last_encoding``.
    """

    def __init__(
        self,
        resolver: CRSResolver,
        transformer: CoordinateTransformer,
        candidate_encodings: Optional[Sequence[str]] = None,
    ):
        self.normalizer = GeoJSONNormalizer(resolver, transformer)
        self.candidate_encodings = candidate_encodings
        self.last_encoding: Optional[str] = None

    @staticmethod
    def _pair(
        group: ShapefileGroup, shapes: List[Any], records: List[Dict[str, Any]]
    ) -> List[Tuple[Any, Dict[str, Any]]]:
        """Pair shapes with attribute records by position; extra shapes get no attributes."""
        if group.dbf is not None and len(records) != len(shapes):
            logger.warning(
                f"{group.base_name}: {len(shapes)} shapes but {len(records)} attribute records, "
                "pairing them by position"
            )
        return [
            (shape, record or {})
            for shape, record in zip_longest(shapes, records[: len(shapes)])
        ]

    def _read_combined(self, group: ShapefileGroup) -> List[Tuple[Any, Dict[str, Any]]]:
        components = {"shp": io.BytesIO(group.shp)}
        if group.shx:
            components["shx"] = io.BytesIO(group.shx)
        if group.dbf:
            components["dbf"] = io.BytesIO(group.dbf)
        reader = shapefile.Reader(encoding=_RAW_ATTRIBUTE_ENCODING, **components)
        try:
            shapes = list(reader.iterShapes())
            records = [record.as_dict() for record in reader.iterRecords()] if group.dbf else []
        finally:
            reader.close()
        return self._pair(group, shapes, records)

    def _read_separately(self, group: ShapefileGroup) -> List[Tuple[Any, Dict[str, Any]]]:
        shape_reader = shapefile.Reader(shp=io.BytesIO(group.shp))
        try:
            shapes = list(shape_reader.iterShapes())
        finally:
            shape_reader.close()

        records: List[Dict[str, Any]] = []
        if group.dbf is not None:
            record_reader = shapefile.Reader(dbf=io.BytesIO(group.dbf), encoding=_RAW_ATTRIBUTE_ENCODING)
            try:
                records = [record.as_dict() for record in record_reader.iterRecords()]
            finally:
                record_reader.close()
        return self._pair(group, shapes, records)

    def _read(self, group: ShapefileGroup) -> List[Tuple[Any, Dict[str, Any]]]:
        try:
            return self._read_combined(group)
        except _PYSHP_ERRORS as combined_error:
            logger.warning(
                f"Combined parsing of {group.base_name} failed ({combined_error}), "
                "parsing geometry and attributes separately"
            )
        try:
            return self._read_separately(group)
        except _PYSHP_ERRORS as e:
            raise ShapefileError(str(e), base_name=group.base_name) from e

    def _attribute_encoding(self, rows: Sequence[Dict[str, Any]], group: ShapefileGroup) -> str:
        if group.cpg:
            return encoding_for_codepage(group.cpg)
        samples = []
        for properties in rows:
            for value in properties.values():
                if isinstance(value, str) and value:
                    try:
                        samples.append(value.encode(_RAW_ATTRIBUTE_ENCODING))
                    except UnicodeEncodeError:
                        continue
        return detect_bytes_encoding(samples, self.candidate_encodings)

    def assemble(self, group: ShapefileGroup) -> FeatureCollection:
        """
        Read, decode, merge and normalize one shapefile group.

        Args:
            group: Shapefile component group

        Returns:
            FeatureCollection in WGS84

        Raises:
            ShapefileError: If the .shp component is missing or unreadable
            NoFeaturesError: If the group holds only null shapes
        """
        if group.shp is None:
            raise ShapefileError("missing .shp file", base_name=group.base_name)

        if group.shx is None:
            logger.warning(f"{group.base_name}: no .shx index, reading shapes sequentially")
        if group.dbf is None:
            logger.warning(f"{group.base_name}: no .dbf attribute table, features get empty properties")

        records = self._read(group)
        encoding = self._attribute_encoding([properties for _, properties in records], group)
        logger.info(
            f"Parsed {len(records)} records from {group.base_name} "
            f"(attribute encoding {encoding}, projection {'present' if group.prj else 'absent'})"
        )

        features = []
        for index, (shape, properties) in enumerate(records):
            geometry = _geometry_of(shape)
            if geometry is None:
                logger.debug(f"{group.base_name}: skipping null shape {index}")
                continue
            features.append(
                {
                    "type": "Feature",
                    "geometry": geometry,
                    "properties": {
                        key: recover_text(value, encoding) if isinstance(value, str) else value
                        for key, value in properties.items()
                    },
                }
            )

        if not features:
            raise NoFeaturesError(file_name=group.base_name)

        collection = self.normalizer.normalize(
            features,
            file_name=group.base_name,
            projection_text=group.prj,
            infer_from_magnitude=True,
        )
        self.last_encoding = encoding
        return collection
