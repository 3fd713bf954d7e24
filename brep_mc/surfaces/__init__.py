"""Surfaces module: height-map bounded regions."""

from brep_mc.surfaces.heightmap import HeightMapSurface

__all__ = ["HeightMapSurface"]
