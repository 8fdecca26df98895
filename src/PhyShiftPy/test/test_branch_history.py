import numpy as np
import pytest
from PhyShiftPy.Tree import Tree
from PhyShiftPy.BranchEvent import BranchEvent, BranchEventError
from PhyShiftPy.BranchHistory import BranchHistory


################
### HELPERS ####
################

FOUR_TIPS = "((t1:1,t2:1)A:1,(t3:1,t4:1)B:1)R;"

@pytest.fixture
def tree() -> Tree:
    return Tree.from_newick(FOUR_TIPS)

@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)

def event_at(tree : Tree, rng : np.random.Generator, x : float) -> BranchEvent:
    return BranchEvent(x, tree.map_event_to_tree(x), tree, rng)

##############################
#### BRANCH HISTORY TESTS ####
##############################

def test_empty_history(tree):
    history = tree.get_node_by_name("A").get_branch_history()

    assert len(history) == 0
    assert history.get_number_of_branch_events() == 0
    assert history.get_last_event() is None
    assert history.get_node_event() is None
    assert history.get_ancestral_node_event() is None


def test_events_kept_in_map_order(tree, rng):
    history = tree.get_node_by_name("A").get_branch_history()
    late = event_at(tree, rng, 0.9)
    early = event_at(tree, rng, 0.1)
    middle = event_at(tree, rng, 0.5)

    for event in (late, early, middle):
        history.add_event_to_branch_history(event)

    assert list(history) == [early, middle, late]
    assert history.get_last_event() is late
    assert middle in history


def test_ties_keep_insertion_order(tree, rng):
    history = tree.get_node_by_name("B").get_branch_history()
    first = event_at(tree, rng, 3.5)
    second = event_at(tree, rng, 3.5)

    history.add_event_to_branch_history(first)
    history.add_event_to_branch_history(second)

    assert list(history) == [first, second]
    assert history.get_last_event() is second
    assert history.get_last_event(second) is first


def test_reinserted_event_keeps_place_among_ties(tree, rng):
    history = tree.get_node_by_name("B").get_branch_history()
    first = event_at(tree, rng, 3.5)
    second = event_at(tree, rng, 3.5)
    history.add_event_to_branch_history(first)
    history.add_event_to_branch_history(second)

    history.pop_event_off_branch_history(first)
    history.add_event_to_branch_history(first)

    assert list(history) == [first, second]
    assert history.get_last_event() is second


def test_last_event_before(tree, rng):
    history = tree.get_node_by_name("A").get_branch_history()
    ancestral = event_at(tree, rng, 4.5)
    history.set_ancestral_node_event(ancestral)

    early = event_at(tree, rng, 0.2)
    late = event_at(tree, rng, 0.8)
    history.add_event_to_branch_history(late)
    history.add_event_to_branch_history(early)

    assert history.get_last_event(late) is early
    assert history.get_last_event(early) is ancestral


def test_pop_event(tree, rng):
    history = tree.get_node_by_name("A").get_branch_history()
    kept = event_at(tree, rng, 0.3)
    popped = event_at(tree, rng, 0.6)
    history.add_event_to_branch_history(kept)
    history.add_event_to_branch_history(popped)

    history.pop_event_off_branch_history(popped)
    assert list(history) == [kept]
    assert popped not in history

    with pytest.raises(ValueError):
        history.pop_event_off_branch_history(popped)
    with pytest.raises(ValueError):
        history.get_last_event(popped)


def test_cached_events(tree, rng):
    history = BranchHistory()
    event = event_at(tree, rng, 0.5)

    history.set_node_event(event)
    history.set_ancestral_node_event(event)
    assert history.get_node_event() is event
    assert history.get_ancestral_node_event() is event

############################
#### BRANCH EVENT TESTS ####
############################

def test_event_times(tree, rng):
    event = event_at(tree, rng, 1.5)

    assert event.get_event_node().get_name() == "t1"
    assert event.get_map_time() == 1.5
    assert event.get_ancestor_delta() == pytest.approx(0.5)
    assert event.get_absolute_time() == pytest.approx(1.5)

    event_b = event_at(tree, rng, 3.25)
    assert event_b.get_absolute_time() == pytest.approx(0.25)


def test_local_move_within_branch(tree, rng):
    event = event_at(tree, rng, 1.5)
    event.move_event_local(0.3)

    assert event.get_event_node().get_name() == "t1"
    assert event.get_map_time() == pytest.approx(1.8)


def test_local_move_reflects_at_tip(tree, rng):
    event = event_at(tree, rng, 1.5)
    event.move_event_local(0.8)

    assert event.get_event_node().get_name() == "t1"
    assert event.get_map_time() == pytest.approx(1.7)


def test_local_move_rootward(tree, rng):
    event = event_at(tree, rng, 1.5)
    event.move_event_local(-0.7)

    assert event.get_event_node().get_name() == "A"
    assert event.get_map_time() == pytest.approx(0.8)


def test_local_move_over_root(tree, rng):
    event = event_at(tree, rng, 0.5)
    event.move_event_local(-0.75)

    assert event.get_event_node().get_name() == "B"
    assert event.get_map_time() == pytest.approx(3.25)


def test_local_move_tipward_into_child(tree, rng):
    event = event_at(tree, rng, 0.5)
    event.move_event_local(0.75)

    assert event.get_event_node().get_name() in ("t1", "t2")
    assert event.get_ancestor_delta() == pytest.approx(0.25)


def test_local_move_keeps_distance_from_root(tree):
    """
    Local moves that do not touch a tip or cross the root only slide the
    event, so its distance from the root changes by exactly the step.
    """
    rng = np.random.default_rng(11)
    event = BranchEvent(3.5, tree.get_node_by_name("B"), tree, rng)
    event.move_event_local(0.9)

    assert event.get_event_node().get_name() in ("t3", "t4")
    assert event.get_absolute_time() == pytest.approx(1.4)


def test_global_move_and_revert(tree, rng):
    event = event_at(tree, rng, 0.5)
    node = event.get_event_node()

    for _ in range(50):
        event.move_event_global()
        x = event.get_map_time()
        assert 0.0 <= x <= tree.get_total_map_length()
        owner = event.get_event_node()
        assert owner.get_map_start() <= x <= owner.get_map_end()

        event.revert_old_map_position()
        assert event.get_event_node() is node
        assert event.get_map_time() == 0.5


def test_revert_without_move(tree, rng):
    with pytest.raises(BranchEventError):
        event_at(tree, rng, 0.5).revert_old_map_position()
