import numpy as np
import pytest

from meshchain.core.errors import NoDefaultSceneError
from meshchain.core.hierarchy import (
    build_scene,
    flatten_mesh_hierarchy,
    rotation_z,
    scaling,
    translation,
)


def test_world_transform_composes_parent_first() -> None:
    scene = build_scene([
        (0, None, None, translation([1.0, 0.0, 0.0])),
        (1, 0, 0, scaling(2.0)),
    ])
    instances = flatten_mesh_hierarchy(scene)
    assert len(instances) == 1
    np.testing.assert_allclose(instances[0].transform, translation([1, 0, 0]) @ scaling(2.0))
    assert instances[0].mesh == 0
    assert instances[0].object_id == 1


def test_instances_follow_declaration_order_depth_first() -> None:
    scene = build_scene([
        (0, None, 2, None),
        (1, 0, 0, None),
        (2, None, 1, None),
        (3, 0, 1, translation([0, 0, 5])),
        (4, 1, 2, None),
    ])
    instances = flatten_mesh_hierarchy(scene)
    assert [i.object_id for i in instances] == [0, 1, 4, 3, 2]
    assert [i.mesh for i in instances] == [2, 0, 2, 1, 1]


def test_node_without_mesh_still_propagates_transform() -> None:
    scene = build_scene([
        (0, None, None, rotation_z(90.0)),
        (1, 0, None, translation([1, 0, 0])),
        (2, 1, 3, None),
    ])
    (instance,) = flatten_mesh_hierarchy(scene)
    np.testing.assert_allclose(instance.transform[:3, 3], [0.0, 1.0, 0.0], atol=1e-12)


def test_global_transform_is_prepended() -> None:
    scene = build_scene([(0, None, 0, translation([1, 2, 3]))])
    (instance,) = flatten_mesh_hierarchy(scene, global_transform=scaling(2.0))
    np.testing.assert_allclose(instance.transform[:3, 3], [2.0, 4.0, 6.0])


def test_missing_scene_raises() -> None:
    with pytest.raises(NoDefaultSceneError):
        flatten_mesh_hierarchy(None)


def test_cycles_and_unknown_parents_are_rejected() -> None:
    with pytest.raises(ValueError):
        flatten_mesh_hierarchy(build_scene([(0, 1, 0, None), (1, 0, 0, None)]))
    with pytest.raises(ValueError):
        flatten_mesh_hierarchy(build_scene([(0, None, 0, None), (1, 7, 0, None)]))


def test_reference_counts() -> None:
    scene = build_scene([(0, None, 0, None), (1, 0, 0, None), (2, None, 2, None)])
    assert scene.mesh_reference_counts(3) == [2, 0, 1]
