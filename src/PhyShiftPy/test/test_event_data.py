import numpy as np
import pytest
from PhyShiftPy.Tree import Tree, TreeError
from PhyShiftPy.Settings import Settings
from PhyShiftPy.Model import ModelError
from PhyShiftPy.SpExModel import SpExModel
from PhyShiftPy.EventData import *


################
### HELPERS ####
################

FOUR_TIPS = "((t1:1,t2:1)A:1,(t3:1,t4:1)B:1)R;"
EIGHT_TIPS = "(((a:0.7,b:0.4)ab:1.1,(c:0.2,d:1.3)cd:0.6)abcd:0.9," \
             "((e:2.0,f:0.3)ef:0.5,(g:0.8,h:0.05)gh:1.4)efgh:0.35)root;"

EVENT_DATA = """# species1 species2 event_time lam_init lam_shift mu_init mu_shift
t1 NA 1.5 0.3 0.0 0.02 0.0

t3 t4 0.5 0.4 0.01 0.03 0.0
t1 t3 0.0 0.1 0.0 0.01 0.0
"""

def build_model(newick : str = FOUR_TIPS, seed : int = 2, **settings):
    return SpExModel(np.random.default_rng(seed),
                     Tree.from_newick(newick),
                     Settings(**settings))

def write_lines(tmp_path, text : str):
    path = tmp_path / "event_data.txt"
    path.write_text(text)
    return path

def assignment(model) -> dict[str, tuple]:
    """
    Node name -> (branch, distance from root, parameters) of its effective
    event, comparable across separately built trees.
    """
    result = {}
    for node in model.get_tree().get_nodes():
        event = node.get_branch_history().get_node_event()
        result[node.get_name()] = (event.get_event_node().get_name(),
                                   event.get_absolute_time(),
                                   event.get_parameters())
    return result

#################
#### PARSING ####
#################

def test_parse_event_record():
    record = parse_event_record("t1 NA 1.5 0.3 0.0 0.02 0.0", 4)

    assert record == EventRecord("t1", NA, 1.5, (0.3, 0.0, 0.02, 0.0))
    assert record.to_line() == "t1 NA 1.5 0.3 0.0 0.02 0.0"


def test_parse_bad_records():
    bad_lines = ["t1 NA 1.5 0.3 0.0 0.02",       # too few fields
                 "t1 NA 1.5 0.3 0.0 0.02 0.0 1",  # too many fields
                 "t1 NA one 0.3 0.0 0.02 0.0",    # bad time
                 "t1 NA 1.5 0.3 x 0.02 0.0",      # bad parameter
                 "NA t1 1.5 0.3 0.0 0.02 0.0",    # first species NA
                 "NA NA 1.5 0.3 0.0 0.02 0.0"]

    for line in bad_lines:
        with pytest.raises(EventDataError):
            parse_event_record(line, 4)


def test_read_event_data(tmp_path):
    records = read_event_data(write_lines(tmp_path, EVENT_DATA), 4)

    assert len(records) == 3
    assert records[1] == EventRecord("t3", "t4", 0.5, (0.4, 0.01, 0.03, 0.0))

    with pytest.raises(EventDataError):
        read_event_data(tmp_path / "missing.txt", 4)

########################
#### INITIALIZATION ####
########################

def test_initialize_from_file(tmp_path):
    model = build_model()
    model.initialize_model_from_event_data_file(write_lines(tmp_path,
                                                            EVENT_DATA))
    model.check_branch_histories()

    tree = model.get_tree()
    root_event = model.get_root_event()
    assert model.get_number_of_events() == 2
    assert root_event.get_parameters() == (0.1, 0.0, 0.01, 0.0)

    on_t1, on_b = model.get_events()
    assert on_t1.get_event_node().get_name() == "t1"
    assert on_t1.get_map_time() == pytest.approx(1.5)
    assert on_t1.get_parameters() == (0.3, 0.0, 0.02, 0.0)
    assert on_b.get_event_node().get_name() == "B"
    assert on_b.get_map_time() == pytest.approx(3.5)
    assert on_b.get_absolute_time() == pytest.approx(0.5)

    def effective(name):
        return tree.get_node_by_name(name).get_branch_history().get_node_event()

    assert effective("t1") is on_t1
    assert effective("t2") is root_event
    assert effective("A") is root_event
    assert effective("t3") is on_b and effective("t4") is on_b

    assert tree.get_node_by_name("t1").attribute_value(
        "mean_speciation_rate") == pytest.approx(0.5 * 0.1 + 0.5 * 0.3)


def test_initialize_from_settings_path(tmp_path):
    path = write_lines(tmp_path, EVENT_DATA)
    model = build_model(event_data_infile = str(path))
    model.initialize_model_from_event_data_file()

    assert model.get_number_of_events() == 2


def test_initialize_errors(tmp_path):
    params = " 0.3 0.0 0.02 0.0\n"

    with pytest.raises(EventDataError):
        build_model().initialize_model_from_event_data_file(
            tmp_path / "missing.txt")
    with pytest.raises(EventDataError):
        build_model().initialize_model_from_event_data_file(
            write_lines(tmp_path, "NA t1 1.5" + params))
    with pytest.raises(EventDataError):
        build_model().initialize_model_from_event_data_file(
            write_lines(tmp_path, "t1 NA 1.5 0.3\n"))
    with pytest.raises(TreeError):
        build_model().initialize_model_from_event_data_file(
            write_lines(tmp_path, "t9 NA 1.5" + params))
    with pytest.raises(TreeError):
        build_model().initialize_model_from_event_data_file(
            write_lines(tmp_path, "t1 t9 0.5" + params))

    # t1's branch spans times 1 to 2
    with pytest.raises(EventDataError):
        build_model().initialize_model_from_event_data_file(
            write_lines(tmp_path, "t1 NA 0.5" + params))


def test_initialize_with_outstanding_proposal(tmp_path):
    model = build_model()
    model.add_event_to_tree(0.5)

    with pytest.raises(ModelError):
        model.initialize_model_from_event_data_file(
            write_lines(tmp_path, EVENT_DATA))

####################
#### ROUND TRIP ####
####################

def test_write_event_data(tmp_path):
    model = build_model()
    model.initialize_model_from_event_data_file(write_lines(tmp_path,
                                                            EVENT_DATA))
    out = tmp_path / "out.txt"
    model.write_event_data_file(out)

    lines = out.read_text().splitlines()
    assert lines[0] == "# species1 species2 event_time lam_init lam_shift " \
                       "mu_init mu_shift"
    assert lines[1] == "t1 t3 0.0 0.1 0.0 0.01 0.0"
    assert lines[2].startswith("t1 NA 1.5 ")
    assert lines[3].startswith("t3 t4 0.5 ")


def test_round_trip(tmp_path):
    model = build_model(EIGHT_TIPS, seed = 8)
    for _ in range(10):
        model.add_event_to_tree()
        model.accept_proposal()
    for _ in range(20):
        model.propose_event_move()
        model.accept_proposal()

    path = tmp_path / "round_trip.txt"
    write_event_data(model, path)

    copy = build_model(EIGHT_TIPS, seed = 99)
    copy.initialize_model_from_event_data_file(path)
    copy.check_branch_histories()

    assert copy.get_number_of_events() == model.get_number_of_events()
    original = assignment(model)
    restored = assignment(copy)
    for name, (branch, time, params) in original.items():
        assert restored[name][0] == branch
        assert restored[name][1] == pytest.approx(time)
        assert restored[name][2] == pytest.approx(params)
