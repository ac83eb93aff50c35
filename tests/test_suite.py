import pytest
import yaml

from promptsmith.errors import SuiteValidationError
from promptsmith.suite import (
    YamlSnapshotWriter,
    load_benchmark_suite,
    load_test_suite,
    parse_benchmark_suite,
    parse_test_suite,
)

TEST_SUITE = """
name: greeting-tests
prompt: greeting
tests:
  - name: says hello
    inputs:
      name: Ana
    tags: [smoke]
    assertions:
      - type: contains
        value: Ana
      - type: snapshot
  - name: pending
    skip: true
"""


def test_parse_test_suite():
    suite = parse_test_suite(TEST_SUITE)

    assert suite.name == "greeting-tests"
    assert suite.version is None
    first, second = suite.tests
    assert first.inputs == {"name": "Ana"}
    assert [a.type for a in first.assertions] == ["contains", "snapshot"]
    assert second.skip and second.assertions == []


def test_filtered_by_name_and_tag():
    suite = parse_test_suite(TEST_SUITE)

    assert [t.name for t in suite.filtered(pattern="hello").tests] == ["says hello"]
    assert [t.name for t in suite.filtered(tags=["smoke"]).tests] == ["says hello"]
    assert suite.filtered(tags=["nightly"]).tests == []
    assert len(suite.tests) == 2


@pytest.mark.parametrize(
    "document, message",
    [
        ("prompt: p\ntests: [{name: t, assertions: [{type: not_empty}]}]", "name"),
        ("name: ' '\nprompt: p\ntests: [{name: t, assertions: [{type: not_empty}]}]", "test suite requires a name"),
        ("name: s\nprompt: p\ntests: []", "test suite requires at least one test"),
        ("name: s\nprompt: p\ntests: [{name: t}]", "test 't' requires at least one assertion"),
        ("name: s\nprompt: p\ntests: [{assertions: [{type: not_empty}]}]", "test requires a name"),
        ("name: s\nprompt: p\ntests: [{name: t, assertions: [{type: bogus}]}]", "unknown assertion type: bogus"),
        ("name: s\nprompt: p\ntests: [{name: t, assertions: [{type: contains}]}]", "contains requires a value"),
        ("name: s\nprompt: p\ntests: [{name: t, assertions: [{type: json_path}]}]", "json_path requires a path"),
        ("name: s\nprompt: p\ntests: [{name: t, assertions: [{type: sentiment}]}]", "sentiment requires a value"),
        ("- just\n- a list", "expected a mapping"),
        ("name: [unclosed", "invalid YAML"),
    ],
)
def test_invalid_test_suites(document, message):
    with pytest.raises(SuiteValidationError, match=message):
        parse_test_suite(document)


def test_parse_benchmark_suite_defaults_runs():
    suite = parse_benchmark_suite("name: b\nprompt: p\nmodels: [gpt-4o, claude-sonnet]\nruns_per_model: 0\n")

    assert suite.models == ["gpt-4o", "claude-sonnet"]
    assert suite.runs_per_model == 3
    assert parse_benchmark_suite("name: b\nprompt: p\nmodels: [gpt-4o]\n").runs_per_model == 3


@pytest.mark.parametrize(
    "document, message",
    [
        ("name: b\nprompt: p\nmodels: []", "benchmark suite requires at least one model"),
        ("name: b\nprompt: p\nmodels: [gpt-4o, '']", "model at index 1 is empty"),
        ("name: b\nprompt: ''\nmodels: [gpt-4o]", "benchmark suite requires a prompt name"),
        ("name: b\nprompt: p\nmodels: [gpt-4o]\nruns_per_model: -1", "runs_per_model"),
    ],
)
def test_invalid_benchmark_suites(document, message):
    with pytest.raises(SuiteValidationError, match=message):
        parse_benchmark_suite(document)


def test_load_from_files(tmp_path):
    test_path = tmp_path / "greeting.test.yaml"
    test_path.write_text(TEST_SUITE)
    bench_path = tmp_path / "greeting.bench.yaml"
    bench_path.write_text("name: b\nprompt: greeting\nmodels: [gpt-4o]\nvariables: {name: Ana}\n")

    assert load_test_suite(test_path).prompt == "greeting"
    assert load_benchmark_suite(bench_path).variables == {"name": "Ana"}


def test_error_message_names_the_file(tmp_path):
    path = tmp_path / "broken.test.yaml"
    path.write_text("name: s\nprompt: p\ntests: []\n")

    with pytest.raises(SuiteValidationError, match="broken.test.yaml"):
        load_test_suite(path)


def test_yaml_snapshot_writer_updates_named_case(tmp_path):
    path = tmp_path / "greeting.test.yaml"
    path.write_text(TEST_SUITE)

    YamlSnapshotWriter(path).write("greeting-tests", "says hello", "Hello, Ana!\n")

    data = yaml.safe_load(path.read_text())
    assert data["tests"][0]["snapshot"] == "Hello, Ana!\n"
    assert "snapshot" not in data["tests"][1]
    assert load_test_suite(path).tests[0].snapshot == "Hello, Ana!\n"


def test_yaml_snapshot_writer_unknown_case(tmp_path):
    path = tmp_path / "greeting.test.yaml"
    path.write_text(TEST_SUITE)

    with pytest.raises(SuiteValidationError, match="test 'missing' not found"):
        YamlSnapshotWriter(path).write("greeting-tests", "missing", "x")
