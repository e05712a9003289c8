"""Tests for the WishBoard read model"""

from aggregate_ledger.kernel.projections import ProjectionEngine
from aggregate_ledger.wishes import User
from aggregate_ledger.wishes.projections import WishBoard


def board_from(user: User) -> WishBoard:
    board = WishBoard()
    engine = ProjectionEngine()
    engine.add_read_model(board)
    engine.apply_all(user.uncommitted_events())
    return board


def test_board_lists_wishes(test_time) -> None:
    user = User("user-1", time_provider=test_time)
    made_at = test_time.now()
    user.make_wish("w1", "a@example.com", "first")
    test_time.advance_seconds(60)
    user.make_wish("w2", "b@example.com", "second")

    board = board_from(user)

    assert [e.wish_id for e in board.wishes_of("user-1")] == ["w1", "w2"]
    assert board.wishes_of("user-1")[0].made_at == made_at
    assert board.outstanding_count("user-1") == 2


def test_board_tracks_grants_and_removals() -> None:
    user = User("user-1")
    user.make_wish("w1", "a@example.com", "first")
    user.make_wish("w2", "b@example.com", "second")
    user.grant_wish("w1")
    user.remove_wish("w2")

    board = board_from(user)

    entries = board.wishes_of("user-1")
    assert [(e.wish_id, e.status) for e in entries] == [("w1", "GRANTED")]
    assert board.outstanding_count("user-1") == 0
    assert board.totals() == {"users": 1, "wishes": 1, "granted": 1}


def test_unknown_user_has_no_wishes() -> None:
    assert WishBoard().wishes_of("nobody") == []


def test_state_roundtrip() -> None:
    user = User("user-1")
    user.make_wish("w1", "a@example.com", "first")
    board = board_from(user)

    copy = WishBoard()
    copy.load_dict(board.to_dict())

    assert copy.wishes_of("user-1") == board.wishes_of("user-1")
