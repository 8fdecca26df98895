import networkx as nx
import pytest
from PhyShiftPy.Tree import *


################
### HELPERS ####
################

FOUR_TIPS = "((t1:1,t2:1)A:1,(t3:1,t4:1)B:1)R;"
UNEVEN = "((a:0.5,(b:1.5,c:0.25):2):1,d:0.75);"

def build_four_tip_tree() -> Tree:
    return Tree.from_newick(FOUR_TIPS)

################
#### TESTS #####
################

def test_parse_four_tips():
    tree = build_four_tip_tree()

    assert tree.number_of_nodes() == 7
    assert len(tree) == 7
    assert [node.get_name() for node in tree.get_nodes()] == \
        ["R", "A", "t1", "t2", "B", "t3", "t4"]
    assert [tip.get_name() for tip in tree.get_tips()] == \
        ["t1", "t2", "t3", "t4"]

    root = tree.get_root()
    assert root.is_root()
    assert root.get_anc() is None
    assert root.get_time() == 0.0
    assert root.get_lf_desc().get_name() == "A"
    assert root.get_rt_desc().get_name() == "B"

    t3 = tree.get_node_by_name("t3")
    assert t3.is_tip()
    assert t3.get_lf_desc() is None and t3.get_rt_desc() is None
    assert t3.get_anc().get_name() == "B"
    assert t3.get_time() == pytest.approx(2.0)


def test_coordinate_map_layout():
    tree = build_four_tip_tree()
    expected = {"A" : (0, 1), "t1" : (1, 2), "t2" : (2, 3),
                "B" : (3, 4), "t3" : (4, 5), "t4" : (5, 6)}

    for name, (start, end) in expected.items():
        node = tree.get_node_by_name(name)
        assert node.get_map_start() == pytest.approx(start)
        assert node.get_map_end() == pytest.approx(end)

    assert tree.get_total_map_length() == pytest.approx(6.0)
    assert tree.get_root().get_map_start() == 0.0
    assert tree.get_root().get_map_end() == 0.0


def test_map_event_to_tree():
    """
    Each branch owns the half open interval (map_start, map_end].
    """
    tree = build_four_tip_tree()

    assert tree.map_event_to_tree(0.0).get_name() == "A"
    assert tree.map_event_to_tree(0.5).get_name() == "A"
    assert tree.map_event_to_tree(1.0).get_name() == "A"
    assert tree.map_event_to_tree(1.0 + 1e-9).get_name() == "t1"
    assert tree.map_event_to_tree(3.5).get_name() == "B"
    assert tree.map_event_to_tree(6.0).get_name() == "t4"

    with pytest.raises(TreeError):
        tree.map_event_to_tree(-0.1)
    with pytest.raises(TreeError):
        tree.map_event_to_tree(6.1)


def test_map_skips_zero_length_branch():
    tree = Tree.from_newick("((a:1,b:1):0,c:1);")
    internal = tree.get_root().get_lf_desc()

    assert internal.get_branch_length() == 0.0
    for x in (0.25, 0.5, 1.0):
        assert tree.map_event_to_tree(x).get_name() == "a"


def test_uneven_tree():
    tree = Tree.from_newick(UNEVEN)

    assert tree.max_root_to_tip_length() == pytest.approx(4.5)
    assert tree.get_total_map_length() == pytest.approx(6.0)
    assert tree.get_node_by_name("c").get_time() == pytest.approx(3.25)

    # Unnamed internal nodes get generated names, in pre-order
    assert tree.get_node_by_name("Internal0").is_root()
    assert tree.get_node_by_name("Internal1").get_anc().is_root()


def test_node_mrca():
    tree = Tree.from_newick(UNEVEN)
    graph = tree.to_networkx()
    names = [node.get_name() for node in tree.get_nodes()]

    for first in names:
        for second in names:
            expected = nx.lowest_common_ancestor(graph, first, second)
            assert tree.get_node_mrca(first, second).get_name() == expected

    with pytest.raises(TreeError):
        tree.get_node_mrca("a", "nope")


def test_representative_tips():
    tree = Tree.from_newick(UNEVEN)

    for node in tree.get_nodes():
        species1, species2 = tree.representative_tips(node)
        if node.is_tip():
            assert (species1, species2) == (node.get_name(), NA)
        else:
            assert tree.get_node_mrca(species1, species2) is node


def test_to_networkx():
    graph = build_four_tip_tree().to_networkx()

    assert graph.number_of_nodes() == 7
    assert graph.number_of_edges() == 6
    assert nx.is_arborescence(graph)
    assert graph.edges["R", "A"]["length"] == pytest.approx(1.0)
    assert graph.nodes["t4"]["time"] == pytest.approx(2.0)


def test_node_attributes():
    node = build_four_tip_tree().get_node_by_name("A")

    assert node.attribute_value("mean_speciation_rate") is None
    node.set_attribute("mean_speciation_rate", 0.25)
    assert node.attribute_value("mean_speciation_rate") == 0.25


def test_bad_trees():
    bad_newicks = ["(a:1,b:1,c:1);",          # not binary
                   "((a:1,b:1):1,(c:1):1);",  # unary node
                   "((a,b):1,c:2);",          # missing branch lengths
                   "((a:1,a:1):1,c:2);",      # duplicate names
                   "((a:1,:1):1,c:2);",       # unnamed tip
                   "((a:1,b:-1):1,c:2);",     # negative length
                   "(a:1);"]                  # single tip

    for newick in bad_newicks:
        with pytest.raises(TreeError):
            Tree.from_newick(newick)

    with pytest.raises(TreeError):
        build_four_tip_tree().get_node_by_name("t5")


def test_from_file(tmp_path):
    path = tmp_path / "tree.nwk"
    path.write_text(FOUR_TIPS + "\n")

    tree = Tree.from_file(path)
    assert tree.get_total_map_length() == pytest.approx(6.0)

    with pytest.raises(TreeError):
        Tree.from_file(tmp_path / "missing.nwk")
