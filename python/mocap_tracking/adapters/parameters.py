"""
Turns the flat dotted-key parameter namespace into a TrackingConfiguration.

Expected layout (shown nested, as it appears in a parameter file):

    dynamics_configurations:
      <name>: {max_velocity: [x, y, z], max_angular_velocity: [r, p, y],
               max_roll: f, max_pitch: f, max_fitness_score: f}
    marker_configurations:
      <name>: {offset: [x, y, z], points: {<key>: [x, y, z], ...}}
    rigid_bodies:
      <name>: {initial_position: [x, y, z], marker: <name>, dynamics: <name>}
"""

from __future__ import annotations

import numbers
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Set, Tuple

import numpy as np
import yaml

from mocap_tracking.domain.config import (
    ConfigurationError,
    DynamicsProfile,
    MarkerTemplate,
    RigidBodySpec,
    TrackingConfiguration,
    Vec3,
)

DYNAMICS_SECTION = "dynamics_configurations"
MARKER_SECTION = "marker_configurations"
RIGID_BODY_SECTION = "rigid_bodies"

VEC3 = "vec3"
SCALAR = "scalar"
STRING = "string"


@dataclass(frozen=True)
class FieldSpec:
    """Required field of a configuration section entry."""

    name: str
    kind: str


DYNAMICS_FIELDS = (
    FieldSpec("max_velocity", VEC3),
    FieldSpec("max_angular_velocity", VEC3),
    FieldSpec("max_roll", SCALAR),
    FieldSpec("max_pitch", SCALAR),
    FieldSpec("max_fitness_score", SCALAR),
)
MARKER_FIELDS = (FieldSpec("offset", VEC3),)
RIGID_BODY_FIELDS = (
    FieldSpec("initial_position", VEC3),
    FieldSpec("marker", STRING),
    FieldSpec("dynamics", STRING),
)


def natural_key(token: str) -> Tuple:
    """Sort key ordering "p2" before "p10" and "2" before "10"."""
    parts = re.split(r"(\d+)", token)
    return tuple(int(part) if i % 2 else part for i, part in enumerate(parts))


def extract_names(overrides: Mapping[str, object], prefix: str) -> Set[str]:
    """Distinct child tokens directly below ``prefix`` among the override keys."""
    head = prefix + "."
    names = set()
    for key in overrides:
        if not key.startswith(head):
            continue
        token = key[len(head):].split(".", 1)[0]
        if token:
            names.add(token)
    return names


def get_vec(value, key: str = "<value>") -> List[float]:
    """Normalize an integer or float array parameter to a list of floats."""
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, np.ndarray)):
        raise ConfigurationError("%s: expected a numeric array, got %r" % (key, value))
    result = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, numbers.Real):
            raise ConfigurationError("%s: array element %r is not a number" % (key, item))
        result.append(float(item))
    return result


def flatten_params(tree: Mapping, prefix: str = "") -> Dict[str, object]:
    """Flatten a nested parameter dictionary into dotted keys.

    Only mappings are descended into; lists are leaf values.
    """
    flat: Dict[str, object] = {}
    for key, value in tree.items():
        full_key = "%s.%s" % (prefix, key) if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_params(value, full_key))
        else:
            flat[full_key] = value
    return flat


def load_overrides(path: str) -> Dict[str, object]:
    """Read a YAML parameter file into flat dotted-key overrides."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("%s: top level must be a mapping" % path)
    return flatten_params(data)


class ConfigurationBuilder:
    """Builds dynamics, marker and rigid-body collections from flat overrides."""

    def __init__(self, overrides: Mapping[str, object]):
        self.overrides = overrides

    def build(self) -> TrackingConfiguration:
        dynamics, dynamics_index = self._build_dynamics()
        markers, marker_index = self._build_markers()
        rigid_bodies = self._build_rigid_bodies(marker_index, dynamics_index)
        return TrackingConfiguration(dynamics=dynamics, markers=markers, rigid_bodies=rigid_bodies)

    def _read(self, section: str, name: str, spec: FieldSpec):
        key = "%s.%s.%s" % (section, name, spec.name)
        if key not in self.overrides:
            raise ConfigurationError("missing required parameter '%s'" % key)
        value = self.overrides[key]
        if spec.kind == VEC3:
            vec = get_vec(value, key)
            if len(vec) != 3:
                raise ConfigurationError("%s: expected 3 values, got %d" % (key, len(vec)))
            return tuple(vec)
        if spec.kind == SCALAR:
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ConfigurationError("%s: expected a number, got %r" % (key, value))
            return float(value)
        if not isinstance(value, str) or not value:
            raise ConfigurationError("%s: expected a non-empty name, got %r" % (key, value))
        return value

    def _read_fields(self, section: str, name: str, fields: Tuple[FieldSpec, ...]) -> Dict[str, object]:
        return {spec.name: self._read(section, name, spec) for spec in fields}

    def _build_dynamics(self) -> Tuple[Tuple[DynamicsProfile, ...], Dict[str, int]]:
        profiles = []
        index = {}
        for name in sorted(extract_names(self.overrides, DYNAMICS_SECTION)):
            values = self._read_fields(DYNAMICS_SECTION, name, DYNAMICS_FIELDS)
            index[name] = len(profiles)
            profiles.append(DynamicsProfile(name=name, **values))
        return tuple(profiles), index

    def _build_markers(self) -> Tuple[Tuple[MarkerTemplate, ...], Dict[str, int]]:
        templates = []
        index = {}
        for name in sorted(extract_names(self.overrides, MARKER_SECTION)):
            offset = self._read_fields(MARKER_SECTION, name, MARKER_FIELDS)["offset"]
            points = [
                tuple(p + o for p, o in zip(point, offset))
                for point in self._marker_points(name)
            ]
            index[name] = len(templates)
            templates.append(MarkerTemplate(name=name, points=tuple(points)))
        return tuple(templates), index

    def _marker_points(self, name: str) -> List[Vec3]:
        prefix = "%s.%s.points" % (MARKER_SECTION, name)
        indexed = []
        for token in extract_names(self.overrides, prefix):
            key = "%s.%s" % (prefix, token)
            if key not in self.overrides:
                raise ConfigurationError("%s: expected a point, found nested keys" % key)
            point = get_vec(self.overrides[key], key)
            if len(point) != 3:
                raise ConfigurationError("%s: expected 3 values, got %d" % (key, len(point)))
            indexed.append((natural_key(token), tuple(point)))
        if not indexed:
            raise ConfigurationError("marker configuration '%s' has no points" % name)
        indexed.sort(key=lambda item: item[0])
        return [point for _, point in indexed]

    def _build_rigid_bodies(
        self, marker_index: Mapping[str, int], dynamics_index: Mapping[str, int]
    ) -> Tuple[RigidBodySpec, ...]:
        bodies = []
        for name in sorted(extract_names(self.overrides, RIGID_BODY_SECTION)):
            values = self._read_fields(RIGID_BODY_SECTION, name, RIGID_BODY_FIELDS)
            bodies.append(
                RigidBodySpec(
                    name=name,
                    marker_index=self._resolve(name, "marker", values["marker"], marker_index),
                    dynamics_index=self._resolve(name, "dynamics", values["dynamics"], dynamics_index),
                    initial_position=values["initial_position"],
                )
            )
        return tuple(bodies)

    def _resolve(self, body: str, field_name: str, ref: str, index: Mapping[str, int]) -> int:
        if ref not in index:
            raise ConfigurationError(
                "rigid body '%s' references unknown %s configuration '%s' (known: %s)"
                % (body, field_name, ref, ", ".join(sorted(index)) or "none")
            )
        return index[ref]


def build_configuration(overrides: Mapping[str, object]) -> TrackingConfiguration:
    return ConfigurationBuilder(overrides).build()
