import pytest
from tripwire.tripwire_assert import assert_, expect
from tripwire.tripwire_errors import AssertionFailure, AssertionFatal
from tripwire.tripwire_funcs import get_nested_property, parse_nested_path


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y


# Test cases: (id, path, expected_names)
PATH_CASES = [
    ("single", "a", ["a"]),
    ("dotted", "a.b", ["a", "b"]),
    ("index", "a[0]", ["a", "0"]),
    ("mixed", "a.b[0].c", ["a", "b", "0", "c"]),
    ("escaped_dot", "a\\.b", ["a.b"]),
    ("escaped_bracket", "a\\[0]", ["a[0]"]),
    ("leading_indexes", "[1][2]", ["1", "2"]),
]


@pytest.mark.parametrize(
    "test_id, path, expected",
    PATH_CASES,
    ids=[t[0] for t in PATH_CASES]
)
def test_parse_nested_path(test_id, path, expected):
    assert parse_nested_path(path) == expected


def test_get_nested_property():
    value = {"a": [{"b": Point(1, 2)}], 3: "three"}
    assert get_nested_property(value, "a[0].b.y") == (True, 2)
    assert get_nested_property(value, "3") == (True, "three")
    assert get_nested_property(value, "a[-1].b.x") == (True, 1)
    assert get_nested_property(value, "a[1]") == (False, None)
    assert get_nested_property(value, "a[0].b._hidden") == (False, None)
    assert get_nested_property(None, "a") == (False, None)


# Test cases: (id, assertion)
PASSING_CASES = [
    ("same_members", lambda: expect([1, 2, 3]).to.have.same.members([3, 1, 2])),
    ("members", lambda: expect([1, 2]).to.have.members([2, 1])),
    ("same_members_tuple", lambda: expect((1, 2)).to.have.same.members([2, 1])),
    ("same_members_set", lambda: expect({1, 2}).to.have.same.members([2, 1])),
    ("same_members_counts_duplicates", lambda: expect([1, 1, 2]).to.not_.have.same.members([1, 2, 2])),
    ("same_deep_members", lambda: expect([{"a": 1}]).to.have.same.deep.members([{"a": 1}])),
    ("deep_members", lambda: expect([[1], [2]]).to.have.deep.members([[2], [1]])),
    ("same_ordered_members", lambda: expect([1, 2]).to.have.same.ordered.members([1, 2])),
    ("ordered_members", lambda: expect([1, 2]).to.have.ordered.members([1, 2])),
    ("ordered_members_wrong_order", lambda: expect([1, 2]).to.not_.have.ordered.members([2, 1])),
    ("include_members", lambda: expect([1, 2, 3]).to.include.members([3, 1])),
    ("include_members_missing", lambda: expect([1, 2, 3]).to.not_.include.members([4])),
    ("include_deep_members", lambda: expect([{"a": 1}, {"b": 2}]).to.deep.include.members([{"b": 2}])),
    ("include_ordered_members", lambda: expect([1, 2, 3]).to.include.ordered.members([2, 3])),
    ("include_ordered_members_gap", lambda: expect([1, 2, 3]).to.not_.include.ordered.members([1, 3])),
    ("include_ordered_members_prop", lambda: expect([1, 2, 3]).to.include.ordered_members([1, 2])),
    ("starts_with_members", lambda: expect([1, 2, 3]).to.include.starts_with_members([1, 2])),
    ("ends_with_members", lambda: expect([1, 2, 3]).to.include.ends_with_members([2, 3])),
    ("ends_with_too_many", lambda: expect([1]).to.not_.include.ends_with_members([0, 1])),
    ("subsequence", lambda: expect([1, 2, 3, 4]).to.include.subsequence([1, 3, 4])),
    ("subsequence_out_of_order", lambda: expect([1, 2, 3]).to.not_.include.subsequence([3, 1])),
    ("nested_property", lambda: expect({"a": {"b": [1, 2]}}).to.have.nested.property("a.b[1]")),
    ("nested_property_value", lambda: expect({"a": {"b": [1, 2]}}).to.have.nested.property("a.b[1]", 2)),
    ("nested_property_chain", lambda: expect({"a": {"b": 3}}).to.have.nested.property("a.b").that.equal(3)),
    ("nested_property_escaped", lambda: expect({"a.b": 1}).to.have.nested.property("a\\.b", 1)),
    ("nested_property_attrs", lambda: expect(Point(Point(1, 2), 3)).to.have.nested.property("x.y", 2)),
    ("nested_property_missing", lambda: expect({"a": {}}).to.not_.have.nested.property("a.b")),
    (
        "deep_nested_property",
        lambda: expect({"a": {"b": [{"c": 1}]}}).to.have.deep.nested.property("a.b", [{"c": 1}])
    ),
    ("nested_include", lambda: expect({"a": {"b": 1}, "c": 2}).to.nested.include({"a.b": 1, "c": 2})),
    ("deep_nested_include", lambda: expect({"a": {"b": [1]}}).to.deep.nested.include({"a.b": [1]})),
    ("not_nested_include", lambda: expect({"a": {"b": 1}}).to.not_.nested.include({"a.b": 2})),
]


@pytest.mark.parametrize(
    "test_id, assertion",
    PASSING_CASES,
    ids=[t[0] for t in PASSING_CASES]
)
def test_passing_assertions(test_id, assertion):
    assertion()


# Test cases: (id, assertion, expected_message)
FAILING_CASES = [
    (
        "same_members",
        lambda: expect([1, 2]).to.have.same.members([2, 3]),
        "expected [1,2] to have the same members as [2,3]"
    ),
    (
        "same_deep_members",
        lambda: expect([{"a": 1}]).to.have.same.deep.members([{"a": 2}]),
        "expected [{a:1}] to have the same deep members as [{a:2}]"
    ),
    (
        "same_ordered_members",
        lambda: expect([1, 2]).to.have.same.ordered.members([2, 1]),
        "expected [1,2] to have the same ordered members as [2,1]"
    ),
    (
        "include_members",
        lambda: expect([1, 2]).to.include.members([3]),
        "expected [1,2] to include members [3]"
    ),
    (
        "include_ordered_members",
        lambda: expect([1, 2, 3]).to.include.ordered.members([3, 2]),
        "expected [1,2,3] to include ordered members [3,2]"
    ),
    (
        "starts_with_members",
        lambda: expect([1, 2]).to.include.starts_with_members([2]),
        "expected [1,2] to start with members [2]"
    ),
    (
        "ends_with_members",
        lambda: expect([1, 2]).to.include.ends_with_members([1]),
        "expected [1,2] to end with members [1]"
    ),
    (
        "subsequence",
        lambda: expect([1, 2]).to.include.subsequence([2, 1]),
        "expected [1,2] to include subsequence [2,1]"
    ),
    (
        "not_same_members",
        lambda: expect([1, 2]).to.not_.have.same.members([2, 1]),
        "not expected [1,2] to have the same members as [2,1]"
    ),
    (
        "nested_property",
        lambda: expect({"a": {"b": 1}}).to.have.nested.property("a.c"),
        'expected {a:{b:1}} to have a nested property "a.c"'
    ),
    (
        "nested_property_value",
        lambda: expect({"a": {"b": 1}}).to.have.nested.property("a.b", 2),
        'expected {a:{b:1}} to have a nested property "a.b" equal 2, but got 1'
    ),
    (
        "deep_nested_property_value",
        lambda: expect({"a": {"b": [1]}}).to.have.deep.nested.property("a.b", [2]),
        'expected {a:{b:[1]}} to have a nested property "a.b" deeply equal [2], but got [1]'
    ),
    (
        "nested_include",
        lambda: expect({"a": {"b": 1}}).to.nested.include({"a.b": 3}),
        'expected {a:{b:1}} to have a nested property "a.b" equal 3, but got 1'
    ),
]


@pytest.mark.parametrize(
    "test_id, assertion, expected",
    FAILING_CASES,
    ids=[t[0] for t in FAILING_CASES]
)
def test_failing_assertions(test_id, assertion, expected):
    with pytest.raises(AssertionFailure) as excinfo:
        assertion()
    assert not isinstance(excinfo.value, AssertionFatal)
    assert excinfo.value.message == expected


# Test cases: (id, assertion, expected_message)
FATAL_CASES = [
    ("members_of_scalar", lambda: expect(1).to.have.members([1]), "expected 1 to be a sequence or a set, found int"),
    (
        "members_of_string",
        lambda: expect("ab").to.have.members(["a", "b"]),
        'expected "ab" to be a sequence or a set, found str'
    ),
    (
        "members_scalar_argument",
        lambda: expect([1]).to.not_.include.members(1),
        "expected argument (1) to be a sequence or a set, found int"
    ),
    (
        "nested_path_not_string",
        lambda: expect({"a": 1}).to.not_.have.nested.property(1),
        "expected 1 to be a string using nested syntax"
    ),
    (
        "nested_include_not_mapping",
        lambda: expect({"a": 1}).to.nested.include("a"),
        'expected "a" to be a mapping of nested paths'
    ),
]


@pytest.mark.parametrize(
    "test_id, assertion, expected",
    FATAL_CASES,
    ids=[t[0] for t in FATAL_CASES]
)
def test_fatal_assertions(test_id, assertion, expected):
    with pytest.raises(AssertionFatal) as excinfo:
        assertion()
    assert excinfo.value.message == expected


# Test cases: (id, assertion)
ASSERT_CASES = [
    ("same_members", lambda: assert_.same_members([1, 2], [2, 1])),
    ("not_same_members", lambda: assert_.not_same_members([1], [2])),
    ("same_deep_members", lambda: assert_.same_deep_members([{"a": 1}], [{"a": 1}])),
    ("not_same_deep_members", lambda: assert_.not_same_deep_members([{"a": 1}], [{"a": 2}])),
    ("same_ordered_members", lambda: assert_.same_ordered_members([1, 2], [1, 2])),
    ("not_same_ordered_members", lambda: assert_.not_same_ordered_members([1, 2], [2, 1])),
    ("same_deep_ordered_members", lambda: assert_.same_deep_ordered_members([[1], [2]], [[1], [2]])),
    ("include_members", lambda: assert_.include_members([1, 2, 3], [3, 2])),
    ("not_include_members", lambda: assert_.not_include_members([1, 2, 3], [4])),
    ("include_deep_members", lambda: assert_.include_deep_members([{"a": 1}, 2], [{"a": 1}])),
    ("not_include_deep_members", lambda: assert_.not_include_deep_members([{"a": 1}], [{"a": 2}])),
    ("include_ordered_members", lambda: assert_.include_ordered_members([1, 2, 3], [2, 3])),
    ("not_include_ordered_members", lambda: assert_.not_include_ordered_members([1, 2, 3], [1, 3])),
    ("starts_with_members", lambda: assert_.starts_with_members([1, 2, 3], [1, 2])),
    ("ends_with_members", lambda: assert_.ends_with_members([1, 2, 3], [2, 3])),
    ("is_subsequence", lambda: assert_.is_subsequence([1, 2, 3], [1, 3])),
    ("is_not_subsequence", lambda: assert_.is_not_subsequence([1, 2, 3], [3, 1])),
    ("nested_property", lambda: assert_.nested_property({"a": {"b": 1}}, "a.b")),
    ("nested_property_value", lambda: assert_.nested_property({"a": [0, 5]}, "a[1]", 5)),
    ("not_nested_property", lambda: assert_.not_nested_property({"a": {}}, "a.b")),
    ("deep_nested_property", lambda: assert_.deep_nested_property({"a": {"b": [1]}}, "a.b", [1])),
    ("not_deep_nested_property", lambda: assert_.not_deep_nested_property({"a": {"b": [1]}}, "a.b", [2])),
    ("nested_include", lambda: assert_.nested_include({"a": {"b": 1}}, {"a.b": 1})),
    ("not_nested_include", lambda: assert_.not_nested_include({"a": {"b": 1}}, {"a.b": 2})),
    ("deep_nested_include", lambda: assert_.deep_nested_include({"a": {"b": [1]}}, {"a.b": [1]})),
    ("not_deep_nested_include", lambda: assert_.not_deep_nested_include({"a": {"b": [1]}}, {"a.b": [2]})),
]


@pytest.mark.parametrize(
    "test_id, assertion",
    ASSERT_CASES,
    ids=[t[0] for t in ASSERT_CASES]
)
def test_assert_functions(test_id, assertion):
    assertion()


def test_assert_members_failure():
    with pytest.raises(AssertionFailure) as excinfo:
        assert_.same_members([1, 2], [1, 3])
    assert excinfo.value.message == "expected [1,2] to have the same members as [1,3]"
    assert excinfo.value.details["expected"] == [1, 3]
