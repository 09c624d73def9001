import math

import pytest
from pyproj import Geod

from council_intel.geometry import buffer_point, degenerate_triangle, ring_centroid, safe_buffer
from council_intel.models import Suggestion, SuggestionCategory
from council_intel.suggestions import (
    DEFAULT_COLOR,
    normalise_items,
    parse_raw_suggestions,
    resolve_relations,
)

_GEOD = Geod(ellps="WGS84")


def _distance_m(a, b):
    _, _, dist = _GEOD.inv(a[0], a[1], b[0], b[1])
    return dist


class TestGeometry:
    def test_buffer_is_closed_ring_at_radius(self):
        geometry = buffer_point((0.0, 51.5), 200.0)
        ring = geometry["coordinates"][0]

        assert geometry["type"] == "Polygon"
        assert ring[0] == ring[-1]
        assert len(ring) >= 4
        for vertex in ring[:-1]:
            assert _distance_m((0.0, 51.5), vertex) == pytest.approx(200.0, abs=0.5)

    def test_centroid_is_the_centre(self):
        lon, lat = ring_centroid(buffer_point((0.0, 51.5), 200.0))
        assert lon == pytest.approx(0.0, abs=1e-5)
        assert lat == pytest.approx(51.5, abs=1e-5)

    @pytest.mark.parametrize("center, radius", [((0.0, 95.0), 200.0), ((0.0, 51.5), 0.0), ((math.nan, 51.5), 200.0)])
    def test_buffer_rejects_bad_input(self, center, radius):
        with pytest.raises(ValueError):
            buffer_point(center, radius)

    def test_safe_buffer_falls_back_to_degenerate_triangle(self):
        assert safe_buffer((10.0, 95.0), 200.0) == degenerate_triangle((10.0, 95.0))
        ring = degenerate_triangle((10.0, 95.0))["coordinates"][0]
        assert ring[0] == ring[-1] == [10.0, 95.0]
        assert len(ring) == 4


class TestNormalisation:
    def test_defaults_applied(self):
        [s] = normalise_items([{"type": "park", "centerPoint": [0, 51.5]}], stage=3)

        assert s.stage == 3
        assert s.id.startswith("stage3-0-")
        assert s.title == "Untitled"
        assert s.status == "proposed"
        assert s.priority == "medium"
        assert s.type is SuggestionCategory.PARK
        assert s.evidence_sources == []
        assert s.implementations == []
        assert s.related_to_title is None
        vertex = s.geometry["coordinates"][0][0]
        assert _distance_m((0.0, 51.5), vertex) == pytest.approx(200.0, abs=0.5)

    def test_existing_status_and_casing(self):
        [s] = normalise_items(
            [
                {
                    "title": "  Station Quarter ",
                    "type": " Transport ",
                    "status": "EXISTING",
                    "priority": "High",
                    "centerPoint": [-2.07, 51.9],
                    "radiusM": 350,
                }
            ],
            stage=1,
        )
        assert s.title == "Station Quarter"
        assert s.type is SuggestionCategory.TRANSPORT
        assert s.status == "existing"
        assert s.priority == "high"
        assert _distance_m((-2.07, 51.9), s.geometry["coordinates"][0][0]) == pytest.approx(350.0, abs=0.5)

    def test_non_positive_radius_uses_default(self):
        [s] = normalise_items([{"type": "housing", "centerPoint": [0, 51.5], "radiusM": -5}], stage=1)
        assert _distance_m((0.0, 51.5), s.geometry["coordinates"][0][0]) == pytest.approx(200.0, abs=0.5)

    def test_implementation_defaults(self):
        [s] = normalise_items(
            [
                {
                    "type": "opportunity_zone",
                    "centerPoint": [0, 51.5],
                    "implementations": [
                        {"type": "housing", "title": "Phase 1"},
                        {"type": "park", "centerPoint": [0.01, 51.51], "color": [300, -5, 10.6, 180], "order": 9},
                    ],
                }
            ],
            stage=2,
        )
        first, second = s.implementations
        assert first.center_point == (0.0, 51.5)
        assert first.radius_m == 100.0
        assert first.color == DEFAULT_COLOR
        assert first.order == 1
        assert _distance_m((0.0, 51.5), first.geometry["coordinates"][0][0]) == pytest.approx(100.0, abs=0.5)
        assert second.color == (255, 0, 11, 180)
        assert second.order == 9
        assert second.center_point == (0.01, 51.51)

    def test_out_of_range_centre_keeps_the_suggestion(self):
        [s] = normalise_items([{"type": "bridge", "centerPoint": [0, 95]}], stage=1)
        assert s.geometry == degenerate_triangle((0.0, 95.0))

    @pytest.mark.parametrize(
        "item",
        [
            {"type": "castle", "centerPoint": [0, 51.5]},
            {"type": "park"},
            {"type": "park", "centerPoint": [0]},
            {"type": "park", "centerPoint": ["west", "north"]},
            {"type": "park", "centerPoint": [math.inf, 51.5]},
            {"type": "park", "centerPoint": [0, 51.5], "implementations": [{"type": "spaceport"}]},
            "just a string",
        ],
    )
    def test_structurally_invalid_items_are_dropped(self, item):
        assert parse_raw_suggestions([item]) == []

    def test_one_bad_item_does_not_affect_the_rest(self):
        items = [{"type": "park", "centerPoint": [0, 51.5]}, {"type": "nope"}, {"type": "housing", "centerPoint": [0, 51.5]}]
        suggestions = normalise_items(items, stage=1)
        assert [s.type for s in suggestions] == [SuggestionCategory.PARK, SuggestionCategory.HOUSING]

    def test_wire_form_uses_camel_case(self):
        [s] = normalise_items([{"type": "park", "centerPoint": [0, 51.5], "relatedToTitle": "Riverside"}], stage=1)
        wire = s.to_wire()
        assert wire["type"] == "park"
        assert wire["relatedToTitle"] == "Riverside"
        assert "evidenceSources" in wire and "overallOutcome" in wire


def _suggestion(id_, stage, title, related=None):
    return Suggestion(
        id=id_,
        stage=stage,
        geometry={},
        type=SuggestionCategory.PARK,
        title=title,
        related_to_title=related,
    )


class TestResolveRelations:
    def test_links_child_to_parent_case_and_space_insensitively(self):
        parent = _suggestion("p", 1, "Riverside Park")
        child = _suggestion("c", 2, "Riverside Bridge", related=" riverside PARK ")

        resolved = resolve_relations([parent, child])

        assert resolved[1].parent_id == "p"
        assert resolved[1].parent_title == "Riverside Park"
        assert resolved[0].related_ids == ["c"]
        assert parent.related_ids == [] and child.parent_id is None

    def test_unknown_and_self_references_are_ignored(self):
        a = _suggestion("a", 1, "Alpha", related="Nowhere")
        b = _suggestion("b", 1, "Beta", related="beta")

        resolved = resolve_relations([a, b])

        assert all(s.parent_id is None and s.related_ids == [] for s in resolved)

    def test_first_title_wins(self):
        first = _suggestion("first", 1, "Town Centre")
        second = _suggestion("second", 2, "Town Centre")
        child = _suggestion("child", 3, "Market Square", related="Town Centre")

        resolved = resolve_relations([first, second, child])

        assert resolved[2].parent_id == "first"
        assert resolved[0].related_ids == ["child"]
        assert resolved[1].related_ids == []

    def test_parent_from_a_later_stage_is_ignored(self):
        early = _suggestion("early", 1, "Canal Path", related="Canal Basin")
        late = _suggestion("late", 4, "Canal Basin")

        resolved = resolve_relations([early, late])

        assert resolved[0].parent_id is None
        assert resolved[1].related_ids == []

    def test_order_is_preserved(self):
        items = [_suggestion(str(i), 1, f"T{i}") for i in range(5)]
        assert [s.id for s in resolve_relations(items)] == ["0", "1", "2", "3", "4"]
