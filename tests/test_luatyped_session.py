import lupa
import pytest

from luatyped import (
    Session, SessionOptions, ContainerHandle, ValueType, Kind, ChunkResult,
    RuntimeInitError, ScriptError, SessionClosedError, TypeMismatchError,
)


@pytest.fixture
def session():
    s = Session()
    s.load_standard_library()
    yield s
    s.close()


def height(session):
    return session.stack.top_index()


# --- Chunks ---

def test_run_chunk_success_returns_empty_message(session):
    ok, message = session.run_chunk("x = 1")
    assert ok is True
    assert message == ""
    assert height(session) == 0


def test_run_chunk_syntax_error_reports_message_and_keeps_stack(session):
    res = session.run_chunk("this is not valid syntax ###")
    assert isinstance(res, ChunkResult)
    assert res.ok is False
    assert res.message
    assert height(session) == 0


def test_run_chunk_runtime_error_is_reported_not_raised(session):
    ok, message = session.run_chunk("error('boom')")
    assert not ok
    assert "boom" in message


def test_chunk_result_raise_for_error():
    ChunkResult(True, "").raise_for_error()
    with pytest.raises(ScriptError) as excinfo:
        ChunkResult(False, "bad things").raise_for_error()
    assert excinfo.value.message == "bad things"


def test_chunk_failure_with_live_handle_keeps_stack(session):
    session.run_chunk("t = {1}")
    t = session.get_global("t", ValueType.CONTAINER)
    assert not session.run_chunk("error('x')").ok
    assert height(session) == 1
    assert t.get_index(1, ValueType.INTEGER) == 1


# --- Standard library ---

def test_fresh_session_withholds_standard_library():
    with Session() as s:
        assert not s.libs_loaded
        assert s.run_chunk("x = 1").ok
        assert not s.run_chunk("y = math.floor(1.5)").ok
        s.load_standard_library()
        assert s.libs_loaded
        assert s.run_chunk("y = math.floor(1.5)").ok
        assert s.get_global("y", ValueType.INTEGER) == 1


def test_load_standard_library_is_idempotent(session):
    session.load_standard_library()
    assert session.run_chunk("s = string.rep('a', 3)").ok
    assert session.get_global("s", ValueType.STRING) == "aaa"


def test_load_libs_option_loads_on_open():
    with Session(load_libs=True) as s:
        assert s.libs_loaded
        assert s.run_chunk("n = tostring(12)").ok


def test_conversions_survive_rebinding_tostring(session):
    session.run_chunk("tostring = nil; tonumber = nil; x = 7; s = '8'")
    assert session.get_global("x", ValueType.STRING) == "7"
    assert session.get_global("s", ValueType.NUMBER) == 8.0


# --- Scalar globals ---

@pytest.mark.parametrize(
    "source,value_type,expected",
    [
        ("x = 1", ValueType.INTEGER, 1),
        ("x = -42", ValueType.INTEGER, -42),
        ("x = 1", ValueType.NUMBER, 1.0),
        ("x = 1.5", ValueType.NUMBER, 1.5),
        ("x = '2.5'", ValueType.NUMBER, 2.5),
        ("x = '0x10'", ValueType.NUMBER, 16.0),
        ("x = 1", ValueType.STRING, "1"),
        ("x = 1.5", ValueType.STRING, "1.5"),
        ("x = 'hello'", ValueType.STRING, "hello"),
        ("x = true", ValueType.BOOLEAN, True),
        ("x = false", ValueType.BOOLEAN, False),
        ("x = 3", ValueType.KIND, Kind.INTEGER),
        ("x = 3.25", ValueType.KIND, Kind.FLOAT),
        ("x = 'a'", ValueType.KIND, Kind.STRING),
        ("x = {}", ValueType.KIND, Kind.CONTAINER),
        ("x = print", ValueType.KIND, Kind.OTHER),
        ("x = nil", ValueType.KIND, Kind.NIL),
    ],
)
def test_get_global_scalars(session, source, value_type, expected):
    assert session.run_chunk(source).ok
    value = session.get_global("x", value_type)
    assert value == expected
    assert type(value) is type(expected)
    assert height(session) == 0


def test_value_type_accepts_its_string_value(session):
    session.run_chunk("x = 5")
    assert session.get_global("x", "integer") == 5
    with pytest.raises(ValueError):
        session.get_global("x", "complex")


@pytest.mark.parametrize(
    "source,value_type,expected_text",
    [
        ("x = 1.5", ValueType.INTEGER, "integer"),
        ("x = 2.0", ValueType.INTEGER, "integer"),
        ("x = '3'", ValueType.INTEGER, "integer"),
        ("x = 'abc'", ValueType.NUMBER, "number or string convertible to number"),
        ("x = true", ValueType.STRING, "string or number"),
        ("x = {}", ValueType.STRING, "string or number"),
        ("x = 1", ValueType.BOOLEAN, "boolean"),
        ("x = nil", ValueType.BOOLEAN, "boolean"),
        ("x = 'tbl'", ValueType.CONTAINER, "table"),
    ],
)
def test_get_global_mismatch(session, source, value_type, expected_text):
    session.run_chunk(source)
    with pytest.raises(TypeMismatchError) as excinfo:
        session.get_global("x", value_type)
    err = excinfo.value
    assert str(err) == f"variable x is not {expected_text}"
    assert err.key == "x"
    assert err.expected == expected_text
    assert isinstance(err, TypeError)
    assert height(session) == 0


def test_stack_is_usable_after_a_mismatch(session):
    session.run_chunk("a = 'no'; b = 2")
    with pytest.raises(TypeMismatchError):
        session.get_global("a", ValueType.INTEGER)
    assert session.get_global("b", ValueType.INTEGER) == 2


def test_undefined_global_is_nil(session):
    assert session.get_global("missing", ValueType.KIND) is Kind.NIL
    with pytest.raises(TypeMismatchError):
        session.get_global("missing", ValueType.INTEGER)


# --- Lifecycle ---

def test_open_classmethod_and_options():
    opts = SessionOptions(load_libs=True)
    with Session.open(opts) as s:
        assert s.options.load_libs
        assert isinstance(s.lua_version, tuple)
        assert s.lua_version >= (5, 1)
        assert "Lua" in s.lua_implementation


def test_unknown_override_is_rejected():
    with pytest.raises(ValueError):
        Session(no_such_option=True)


def test_runtime_creation_failure_raises_runtime_init_error(monkeypatch):
    def boom(*args, **kwargs):
        raise MemoryError("no memory")

    monkeypatch.setattr(lupa, "LuaRuntime", boom)
    with pytest.raises(RuntimeInitError) as excinfo:
        Session()
    assert "cannot create lua state" in str(excinfo.value)


def test_closed_session_rejects_operations():
    s = Session()
    s.run_chunk("t = {x = 1}")
    t = s.get_global("t", ValueType.CONTAINER)
    s.close()
    assert s.closed
    with pytest.raises(SessionClosedError):
        s.run_chunk("x = 1")
    with pytest.raises(SessionClosedError):
        s.get_global("t", ValueType.INTEGER)
    with pytest.raises(IndexError):
        t.get_field("x", ValueType.INTEGER)
    # closing twice and releasing afterwards are both harmless
    s.close()
    t.release()
    assert t.released


def test_bare_session_reports_runtime_identity():
    with Session(load_libs=False) as s:
        assert not s.libs_loaded
        assert "Lua" in s.lua_implementation
        assert s.lua_version >= (5, 1)
    with pytest.raises(SessionClosedError):
        s.lua_implementation


def test_python_bridge_is_never_installed(session):
    assert session.get_global("python", ValueType.KIND) is Kind.NIL
    assert session.get_global("string", ValueType.KIND) is Kind.CONTAINER


@pytest.mark.parametrize("value_type", [ValueType.KIND, ValueType.STRING])
def test_binary_string_global(session, value_type):
    assert session.run_chunk(r's = "\xff\xfe"').ok
    expected = Kind.STRING if value_type is ValueType.KIND else "��"
    assert session.get_global("s", value_type) == expected
    assert height(session) == 0


def test_binary_string_field_key(session):
    assert session.run_chunk(r't = {["\xff"] = 7}').ok
    with session.get_global("t", ValueType.CONTAINER) as t:
        assert t.get_field(b"\xff", ValueType.INTEGER) == 7
        with pytest.raises(TypeMismatchError) as excinfo:
            t.get_field(b"\xff", ValueType.BOOLEAN)
        assert str(excinfo.value) == "variable � is not boolean"
    assert height(session) == 0
