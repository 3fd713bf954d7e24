"""Tests for height-map files and mesh electrical state files."""

import numpy as np
import pytest

from brep_mc.errors import ConfigurationError
from brep_mc.io.charge_file import (
    export_charge_and_potentials, import_charge_and_potentials,
    write_charge_and_potential_map,
)
from brep_mc.io.heightmap_file import parse_height_map, read_height_map, write_height_map
from brep_mc.mesh.connectivity import ConnectivityTable
from brep_mc.mesh.mesh import Mesh

from conftest import kuhn_grid


class TestHeightMapFile:

    def test_write_then_read(self, tmp_path):
        data = np.array([[0.0, 1.0], [2.0, 3.0], [4.0, 5.0]]) * 1.0e-3
        path = write_height_map(tmp_path / 'surface.hm', 1.0, 2.0, 0.5, 0.25, data,
                                is_below=False, zunit=1.0e-3)
        surf = read_height_map(path)
        assert (surf.nx, surf.ny) == (3, 2)
        assert surf.x0 == 1.0 and surf.y0 == 2.0
        assert surf.dX == 0.5 and surf.dY == 0.25
        assert not surf.is_below
        np.testing.assert_allclose(surf.data, data)

    def test_scan_order(self):
        text = "$HeightMapFormat 1 0 0 3 1.0 2 1.0 2.0\n1 2 3\n4 5 6\n"
        fields = parse_height_map(text)
        assert fields['is_below']
        # x varies fastest in the file
        np.testing.assert_allclose(fields['data'], [[2.0, 8.0], [4.0, 10.0], [6.0, 12.0]])

    @pytest.mark.parametrize("text", [
        "",
        "$Wrong 1 0 0 1 1 1 1 1 0",
        "$HeightMapFormat 1 0 0 2 1",
        "$HeightMapFormat 1 0 0 two 1 1 1 1 0 0",
        "$HeightMapFormat 1 0 0 0 1 1 1 1",
        "$HeightMapFormat 1 0 0 2 1 2 1 1 0 0 0",
    ])
    def test_malformed(self, text):
        with pytest.raises(ConfigurationError):
            parse_height_map(text)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_height_map(tmp_path / 'nothing.hm')


@pytest.fixture
def charged_cube(kuhn_cube):
    table = kuhn_cube.table
    table.set_node_potentials(2.0 * table.nodes[:, 0] + 1.0)
    for index in range(6):
        table.set_charge_number(index, 1)
    table.set_charge_number(4, -2)
    kuhn_cube.update_all_potentials()
    return kuhn_cube


class TestChargeFile:

    def test_export_then_import(self, charged_cube, tmp_path):
        path = export_charge_and_potentials(charged_cube, tmp_path / 'state.txt')
        lines = path.read_text().splitlines()
        assert lines[0] == "$NodePotentials"
        assert lines[1] == "8"
        assert "5\t-2" in lines

        potentials = charged_cube.table.node_potentials
        charges = charged_cube.table.charge_numbers
        charged_cube.clear_electrical()
        import_charge_and_potentials(charged_cube, path)
        np.testing.assert_allclose(charged_cube.table.node_potentials, potentials)
        np.testing.assert_array_equal(charged_cube.table.charge_numbers, charges)
        assert charged_cube.tetrahedron(0).potential([0.5, 0.2, 0.1]) == pytest.approx(2.0)

    def test_node_count_mismatch(self, charged_cube, tmp_path):
        path = export_charge_and_potentials(charged_cube, tmp_path / 'state.txt')
        nodes, tets = kuhn_grid(2)
        other = Mesh(ConnectivityTable(nodes, tets))
        with pytest.raises(ConfigurationError):
            import_charge_and_potentials(other, path)

    @pytest.mark.parametrize("text", [
        "$Potentials\n8\n",
        "$NodePotentials\n8\n0\n0\n",
        "$NodePotentials\n8\n" + "0\n" * 8 + "$Charges\n0\n",
        "$NodePotentials\n8\n" + "0\n" * 8 + "$VolumeElementCharges\n1\n7\t1\n",
        "$NodePotentials\n8\n" + "0\n" * 8 + "$VolumeElementCharges\n2\n1\t1\n",
        "$NodePotentials\n8\n" + "0\n" * 8 + "$VolumeElementCharges\n1\nx\t1\n",
    ])
    def test_malformed(self, kuhn_cube, tmp_path, text):
        path = tmp_path / 'state.txt'
        path.write_text(text)
        with pytest.raises(ConfigurationError):
            import_charge_and_potentials(kuhn_cube, path)

    def test_missing_file(self, kuhn_cube, tmp_path):
        with pytest.raises(FileNotFoundError):
            import_charge_and_potentials(kuhn_cube, tmp_path / 'missing.txt')


def test_charge_and_potential_map(charged_cube, tmp_path):
    charged_cube.table.set_charge_number(4, 1)
    path = tmp_path / 'map.txt'
    values = write_charge_and_potential_map(
        charged_cube, [0.2, 0.3, 0.55], [0.5, 0.0, 0.0], [0.0, 0.5, 0.0], 3, 2, path)

    assert values.shape == (2, 3, 2)
    # Inside: density 1 / (1/6), potential 2x + 1
    np.testing.assert_allclose(values[:, :2, 0], 6.0)
    np.testing.assert_allclose(values[0, :2, 1], [1.4, 2.4])
    # x = 1.2 lies outside the mesh
    np.testing.assert_array_equal(values[:, 2], 0.0)

    lines = path.read_text().splitlines()
    assert len(lines) == 5 + 6
    assert lines[3:5] == ["3", "2"]
    assert [float(v) for v in lines[5].split()] == pytest.approx([6.0, 1.4])
