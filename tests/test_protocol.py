import pytest

from svcdemo.protocol import CreateUserReq, EmptyReq, GetUserDetailReq, Ping, UserInfo


def test_empty_req_ignores_params():
    assert EmptyReq.from_params({"a": "1"}) == EmptyReq()


def test_ping_value():
    assert Ping.from_params({"value": "hi"}).value == "hi"
    assert Ping.from_params({}).value == ""


def test_get_user_detail_parses_string_and_int():
    assert GetUserDetailReq.from_params({"user_id": "166"}).user_id == 166
    assert GetUserDetailReq.from_params({"user_id": 167}).user_id == 167
    assert GetUserDetailReq.from_params({"user_id": ["168", "9"]}).user_id == 168


@pytest.mark.parametrize("params", [{}, {"user_id": "0"}, {"user_id": ""}])
def test_get_user_detail_required(params):
    with pytest.raises(ValueError, match="'required' tag"):
        GetUserDetailReq.from_params(params)


@pytest.mark.parametrize("raw", ["abc", "-1", "+5", -3, str(2**64)])
def test_get_user_detail_rejects_bad_numbers(raw):
    with pytest.raises(ValueError, match="ParseUint"):
        GetUserDetailReq.from_params({"user_id": raw})


def test_create_user_valid():
    req = CreateUserReq.from_params({"name": "test_j", "email": "someone@example.com"})
    assert req == CreateUserReq(name="test_j", email="someone@example.com")


def test_create_user_name_too_long():
    with pytest.raises(ValueError, match="'Name' failed on the 'max' tag"):
        CreateUserReq.from_params({"name": "n" * 17, "email": "someone@example.com"})


def test_create_user_name_at_limit():
    req = CreateUserReq.from_params({"name": "n" * 16, "email": "someone@example.com"})
    assert len(req.name) == 16


def test_create_user_bad_email():
    with pytest.raises(ValueError, match="'Email' failed on the 'email' tag"):
        CreateUserReq.from_params({"name": "x", "email": "not-an-email"})


def test_create_user_reports_every_field():
    with pytest.raises(ValueError) as info:
        CreateUserReq.from_params({})
    lines = str(info.value).split("\n")
    assert len(lines) == 2
    assert "'Name'" in lines[0]
    assert "'Email'" in lines[1]


def test_user_info_to_dict():
    info = UserInfo(user_id=166, email="someone@example.com", name="J")
    assert info.to_dict() == {"user_id": 166, "email": "someone@example.com", "name": "J"}
    assert list(info.to_dict()) == ["user_id", "email", "name"]