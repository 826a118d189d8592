import pytest

from app.core.exceptions import HierarchyCycleError
from app.services.hierarchy import GroupNode, resolve_hierarchy


def node(group_id, leader_id=None, manager_id=None):
    return GroupNode(
        id=group_id,
        name=f"Group {group_id}",
        leader_id=leader_id,
        leader_name=f"Leader {leader_id}" if leader_id else None,
        leader_manager_id=manager_id,
    )


def test_child_is_linked_under_group_led_by_leaders_manager():
    # A is led by user 1; B's leader (2) reports to user 1
    forest = resolve_hierarchy([node(1, leader_id=1), node(2, leader_id=2, manager_id=1)])

    assert [r.id for r in forest.roots] == [1]
    assert [c.id for c in forest.roots[0].children] == [2]
    assert forest.nodes[2].parent_group_id == 1
    assert forest.nodes[1].parent_group_id is None
    assert forest.nodes[2].is_leaf
    assert not forest.nodes[1].is_leaf


@pytest.mark.parametrize(
    "nodes",
    [
        [node(1)],                                   # no leader
        [node(1, leader_id=5)],                      # leader without manager
        [node(1, leader_id=5, manager_id=99)],       # manager leads no group
    ],
)
def test_root_cases(nodes):
    forest = resolve_hierarchy(nodes)

    assert [r.id for r in forest.roots] == [1]
    assert forest.roots[0].parent_group_id is None


def test_disconnected_roots_are_kept_in_input_order():
    forest = resolve_hierarchy([
        node(3, leader_id=30),
        node(1, leader_id=10),
        node(4, leader_id=40, manager_id=10),
    ])

    assert [r.id for r in forest.roots] == [3, 1]
    assert [c.id for c in forest.nodes[1].children] == [4]


def test_first_group_claiming_a_leader_wins():
    forest = resolve_hierarchy([
        node(1, leader_id=10),
        node(2, leader_id=10),
        node(3, leader_id=20, manager_id=10),
    ])

    assert forest.nodes[3].parent_group_id == 1
    assert forest.nodes[2].children == []


def test_every_non_root_has_exactly_one_parent_and_no_node_is_its_own_ancestor():
    nodes = [node(1, leader_id=1)]
    nodes += [node(i, leader_id=i, manager_id=(i - 1) // 2 or 1) for i in range(2, 16)]
    forest = resolve_hierarchy(nodes)

    walked = [n.id for n in forest.walk()]
    assert sorted(walked) == list(range(1, 16))
    assert len(walked) == len(set(walked))

    for n in forest.nodes.values():
        seen = {n.id}
        current = n
        while current.parent_group_id is not None:
            current = forest.nodes[current.parent_group_id]
            assert current.id not in seen
            seen.add(current.id)


def test_reporting_cycle_is_rejected():
    # 10 manages 20 and 20 manages 10; group 3 is a separate root
    nodes = [
        node(1, leader_id=10, manager_id=20),
        node(2, leader_id=20, manager_id=10),
        node(3, leader_id=30),
    ]

    with pytest.raises(HierarchyCycleError) as exc_info:
        resolve_hierarchy(nodes)

    assert exc_info.value.group_ids == [1, 2]
    assert exc_info.value.status_code == 400


def test_resolving_twice_does_not_duplicate_children():
    nodes = [node(1, leader_id=1), node(2, leader_id=2, manager_id=1)]
    resolve_hierarchy(nodes)
    forest = resolve_hierarchy(nodes)

    assert [c.id for c in forest.nodes[1].children] == [2]
