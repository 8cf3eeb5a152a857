"""
KML placemark extractor.

Repairs the namespace declarations that hand-edited KML files tend to lose,
parses the document with lxml, and turns every Placemark with a geometry
into a feature. Geometries are built with shapely and converted with
``shapely.geometry.mapping``. Name, description, ExtendedData and style
colours become properties.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from lxml import etree
from shapely.errors import GEOSException
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    mapping,
)
from shapely.geometry.base import BaseGeometry

from geoingest.core.errors import NoFeaturesError, ParseError
from geoingest.models.feature import Feature, FeatureCollection, Properties

logger = logging.getLogger(__name__)

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
GX_NAMESPACE = "http://www.google.com/kml/ext/2.2"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_ROOT_START_TAG = re.compile(r"<(?![?!])([A-Za-z_][\w.:-]*)([^>]*?)(/?)>", re.DOTALL)

# Maximum styleUrl indirections followed (StyleMap -> Style)
_MAX_STYLE_DEPTH = 4

MULTI_TYPES = {"Point": MultiPoint, "LineString": MultiLineString, "Polygon": MultiPolygon}


def repair_namespaces(text: str) -> str:
    """
    Add namespace declarations missing from the root element.

    Injects the default KML namespace when the root has none, and the
    ``xsi``/``gx`` prefixes when they are used without a declaration.

    Args:
        text: KML text

    Returns:
        Text with a root element declaring every namespace it uses
    """
    match = _ROOT_START_TAG.search(text)
    if not match:
        return text

    attributes = match.group(2)
    additions = []
    if not re.search(r"\sxmlns\s*=", attributes):
        additions.append(f'xmlns="{KML_NAMESPACE}"')
    if "xsi:" in text and "xmlns:xsi" not in text:
        additions.append(f'xmlns:xsi="{XSI_NAMESPACE}"')
    if "gx:" in text and "xmlns:gx" not in text:
        additions.append(f'xmlns:gx="{GX_NAMESPACE}"')
    if not additions:
        return text

    logger.debug(f"Injecting namespace declarations: {', '.join(additions)}")
    tag_end = match.start(2)
    return text[:tag_end] + " " + " ".join(additions) + text[tag_end:]


def _trimmed_message(error: etree.XMLSyntaxError) -> str:
    first_line = str(error).splitlines()[0] if str(error) else "XML syntax error"
    message = " ".join(first_line.split())
    return message if len(message) <= 200 else message[:197] + "..."


def parse_kml_document(text: str, file_name: Optional[str] = None) -> etree._Element:
    """
    Parse KML text into an lxml element tree.

    Raises:
        ParseError: With a single-line message and the line of the error
    """
    repaired = repair_namespaces(_XML_DECLARATION.sub("", text, count=1))
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        root = etree.fromstring(repaired.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as e:
        line_number, column = e.position if e.position else (None, None)
        raise ParseError(
            message=f"Error parsing KML: {_trimmed_message(e)}",
            file_name=file_name,
            file_type="KML",
            line_number=line_number,
            column=column,
            suggestions=["Check that the KML file is well-formed XML"],
        ) from e
    if root is None:
        raise ParseError("Error parsing KML: empty document", file_name=file_name, file_type="KML")
    return root


def parse_coordinates(text: Optional[str]) -> List[Tuple[float, ...]]:
    """
    Parse a KML ``coordinates`` string into positions.

    Args:
        text: Whitespace-separated "lon,lat[,alt]" tuples

    Returns:
        Positions; malformed tuples are skipped
    """
    positions: List[Tuple[float, ...]] = []
    for token in (text or "").split():
        parts = [part for part in token.split(",") if part != ""]
        try:
            values = tuple(float(part) for part in parts[:3])
        except ValueError:
            logger.warning(f"Skipping malformed KML coordinate {token!r}")
            continue
        if len(values) >= 2:
            positions.append(values)
    return positions


def kml_color_to_hex(value: Optional[str]) -> Tuple[Optional[str], Optional[float]]:
    """
    Convert a KML colour to a web colour and opacity.

    KML writes colours as ``aabbggrr``; a six digit value is read as
    ``bbggrr`` without alpha.

    Args:
        value: KML colour text

    Returns:
        Tuple of ("#rrggbb", alpha / 255), with None for missing parts
    """
    if not value:
        return None, None
    digits = value.strip().lstrip("#")
    if not re.fullmatch(r"[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8}", digits):
        return None, None

    opacity: Optional[float] = None
    if len(digits) == 8:
        opacity = round(int(digits[0:2], 16) / 255, 3)
        digits = digits[2:]
    bb, gg, rr = digits[0:2], digits[2:4], digits[4:6]
    return f"#{rr}{gg}{bb}".lower(), opacity


def parse_opacity(value: Any) -> Optional[float]:
    """
    Read an opacity given either as a 0-1 decimal or a 0-255 alpha byte.

    Returns:
        Opacity in [0, 1], or None when the value is not a number
    """
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number > 1:
        number = number / 255
    return round(min(max(number, 0.0), 1.0), 3)


class _KmlReader:
    """Walks one parsed KML document."""

    def __init__(self, root: etree._Element, file_name: Optional[str]):
        self.root = root
        self.file_name = file_name
        namespace = etree.QName(root).namespace
        self._prefix = f"{{{namespace}}}" if namespace else ""
        self.styles: Dict[str, etree._Element] = {}
        self.style_maps: Dict[str, etree._Element] = {}
        for element in root.iter(self.q("Style")):
            if element.get("id"):
                self.styles[element.get("id")] = element
        for element in root.iter(self.q("StyleMap")):
            if element.get("id"):
                self.style_maps[element.get("id")] = element

    def q(self, tag: str) -> str:
        return f"{self._prefix}{tag}"

    def child_text(self, element: etree._Element, tag: str) -> Optional[str]:
        child = element.find(self.q(tag))
        if child is None or child.text is None:
            return None
        return child.text.strip()

    # Geometry

    def _ring(self, element: Optional[etree._Element]) -> List[Tuple[float, ...]]:
        if element is None:
            return []
        ring = element.find(self.q("LinearRing"))
        if ring is None:
            return []
        return parse_coordinates(self.child_text(ring, "coordinates"))

    def build_geometry(self, element: etree._Element) -> Optional[BaseGeometry]:
        """Build a shapely geometry from a KML geometry element."""
        tag = etree.QName(element).localname
        try:
            if tag == "Point":
                positions = parse_coordinates(self.child_text(element, "coordinates"))
                return Point(positions[0]) if positions else None
            if tag == "LineString":
                positions = parse_coordinates(self.child_text(element, "coordinates"))
                return LineString(positions) if len(positions) >= 2 else None
            if tag == "LinearRing":
                positions = parse_coordinates(self.child_text(element, "coordinates"))
                return Polygon(positions) if len(positions) >= 3 else None
            if tag == "Polygon":
                shell = self._ring(element.find(self.q("outerBoundaryIs")))
                if len(shell) < 3:
                    return None
                holes = [
                    ring
                    for ring in (self._ring(inner) for inner in element.findall(self.q("innerBoundaryIs")))
                    if len(ring) >= 3
                ]
                return Polygon(shell, holes)
            if tag == "MultiGeometry":
                return self._multi(element)
        except (ValueError, GEOSException) as e:
            logger.warning(f"Skipping invalid {tag} in {self.file_name or 'KML'}: {e}")
            return None

        logger.debug(f"Ignoring unsupported KML geometry {tag}")
        return None

    def _multi(self, element: etree._Element) -> Optional[BaseGeometry]:
        parts = [
            geometry
            for geometry in (self.build_geometry(child) for child in element if isinstance(child.tag, str))
            if geometry is not None and not geometry.is_empty
        ]
        if not parts:
            return None
        kinds = {part.geom_type for part in parts}
        if len(kinds) == 1 and next(iter(kinds)) in MULTI_TYPES:
            return MULTI_TYPES[next(iter(kinds))](parts)
        return GeometryCollection(parts)

    def placemark_geometry(self, placemark: etree._Element) -> Optional[BaseGeometry]:
        for child in placemark:
            if not isinstance(child.tag, str):
                continue
            if etree.QName(child).localname in ("Point", "LineString", "LinearRing", "Polygon", "MultiGeometry"):
                return self.build_geometry(child)
        return None

    # Properties

    def extended_data(self, placemark: etree._Element) -> Properties:
        data: Properties = {}
        extended = placemark.find(self.q("ExtendedData"))
        if extended is None:
            return data
        for item in extended.findall(self.q("Data")):
            name = item.get("name")
            if name:
                data[name] = self.child_text(item, "value") or ""
        for schema_data in extended.findall(self.q("SchemaData")):
            for simple in schema_data.findall(self.q("SimpleData")):
                name = simple.get("name")
                if name:
                    data[name] = (simple.text or "").strip()
        return data

    def resolve_style(self, placemark: etree._Element) -> Optional[etree._Element]:
        inline = placemark.find(self.q("Style"))
        if inline is not None:
            return inline
        return self._style_from_url(self.child_text(placemark, "styleUrl"), 0)

    def _style_from_url(self, url: Optional[str], depth: int) -> Optional[etree._Element]:
        if not url or depth > _MAX_STYLE_DEPTH:
            return None
        style_id = url.split("#")[-1]
        if style_id in self.styles:
            return self.styles[style_id]
        style_map = self.style_maps.get(style_id)
        if style_map is None:
            return None
        for pair in style_map.findall(self.q("Pair")):
            if self.child_text(pair, "key") == "normal":
                inline = pair.find(self.q("Style"))
                if inline is not None:
                    return inline
                return self._style_from_url(self.child_text(pair, "styleUrl"), depth + 1)
        return None

    def style_properties(self, style: Optional[etree._Element]) -> Properties:
        properties: Properties = {}
        if style is None:
            return properties

        poly_style = style.find(self.q("PolyStyle"))
        if poly_style is not None:
            fill, opacity = kml_color_to_hex(self.child_text(poly_style, "color"))
            if fill:
                properties["fill"] = fill
            if opacity is not None:
                properties["fill-opacity"] = opacity
            return properties

        line_style = style.find(self.q("LineStyle"))
        if line_style is not None:
            stroke, opacity = kml_color_to_hex(self.child_text(line_style, "color"))
            if stroke:
                properties["stroke"] = stroke
            if opacity is not None:
                properties["stroke-opacity"] = opacity
        return properties

    def placemark_properties(self, placemark: etree._Element) -> Properties:
        properties: Properties = {}
        name = self.child_text(placemark, "name")
        if name is not None:
            properties["name"] = name
        description = self.child_text(placemark, "description")
        if description is not None:
            properties["description"] = description

        properties.update(self.extended_data(placemark))
        if "fill-opacity" in properties:
            properties["fill-opacity"] = parse_opacity(properties["fill-opacity"])
        fill = properties.get("fill")
        if isinstance(fill, str) and not fill.strip().startswith("#"):
            # ExtendedData colours use the KML aabbggrr order too
            color, alpha = kml_color_to_hex(fill)
            if color:
                properties["fill"] = color
                if alpha is not None:
                    properties.setdefault("fill-opacity", alpha)

        for key, value in self.style_properties(self.resolve_style(placemark)).items():
            properties.setdefault(key, value)
        return properties

    def features(self) -> List[Feature]:
        features: List[Feature] = []
        for index, placemark in enumerate(self.root.iter(self.q("Placemark"))):
            geometry = self.placemark_geometry(placemark)
            if geometry is None or geometry.is_empty:
                logger.debug(f"Placemark {index} has no usable geometry")
                continue
            features.append(
                Feature.from_geometry(_plain(mapping(geometry)), self.placemark_properties(placemark))
            )
        return features


def _plain(value: Any) -> Any:
    """Turn shapely's mapping (tuples) into GeoJSON lists and dicts."""
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def extract_kml(text: str, file_name: Optional[str] = None) -> FeatureCollection:
    """
    Convert KML text into a FeatureCollection.

    Args:
        text: Decoded KML text
        file_name: Name of the source file

    Returns:
        FeatureCollection, one feature per placemark with geometry

    Raises:
        ParseError: If the text is not well-formed XML
        NoFeaturesError: If no placemark has a usable geometry
    """
    root = parse_kml_document(text, file_name)
    features = _KmlReader(root, file_name).features()
    if not features:
        raise NoFeaturesError(message="No features found in KML file", file_name=file_name)

    logger.info(f"Extracted {len(features)} placemarks from {file_name or 'KML'}")
    return FeatureCollection(features=features)
