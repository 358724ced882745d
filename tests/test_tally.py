import random
import threading

import pytest

from core.session import Goal, Reset, SessionTally, TallySnapshot, Team, Undo


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------

def apply_all(tally, events):
    return [tally.apply(e) for e in events]


def random_events(seed, count=300):
    rng = random.Random(seed)
    choices = [Goal(Team.A), Goal(Team.B), Undo(), Undo(), Reset()]
    weights = [4, 4, 3, 3, 1]
    return rng.choices(choices, weights=weights, k=count)


# ---------------------------------------------------------
# Initial state
# ---------------------------------------------------------

def test_fresh_session_is_zero():
    tally = SessionTally()

    assert tally.current() == TallySnapshot(score_a=0, score_b=0, epoch=0, sequence=0)


def test_undo_on_fresh_session_is_noop():
    tally = SessionTally()

    first = tally.apply(Undo())
    second = tally.apply(Undo())

    assert (first.score_a, first.score_b) == (0, 0)
    assert (second.score_a, second.score_b) == (0, 0)
    assert tally.ignored_commands == 2


def test_noop_undo_still_advances_sequence():
    tally = SessionTally()

    snapshot = tally.apply(Undo())

    assert snapshot.sequence == 1
    assert snapshot.epoch == 0


# ---------------------------------------------------------
# Scenarios
# ---------------------------------------------------------

def test_goal_goal_goal_undo_scenario():
    tally = SessionTally()

    snapshots = apply_all(tally, [Goal(Team.A), Goal(Team.A), Goal(Team.B), Undo()])
    final = snapshots[-1]

    assert (final.score_a, final.score_b) == (2, 0)
    assert final.sequence == 4
    assert tally.current() == final


def test_undo_restores_prior_scores():
    tally = SessionTally()
    apply_all(tally, [Goal(Team.B), Goal(Team.A)])
    before = tally.current()

    tally.apply(Goal(Team.A))
    after_undo = tally.apply(Undo())

    assert (after_undo.score_a, after_undo.score_b) == (before.score_a, before.score_b)


def test_multiple_undos_walk_back_in_order():
    tally = SessionTally()
    apply_all(tally, [Goal(Team.A), Goal(Team.B), Goal(Team.B)])

    assert tally.apply(Undo()).score_b == 1
    assert tally.apply(Undo()).score_b == 0
    last = tally.apply(Undo())
    assert (last.score_a, last.score_b) == (0, 0)
    assert tally.undo_depth == 0


def test_reset_starts_new_epoch():
    tally = SessionTally()
    apply_all(tally, [Goal(Team.A), Goal(Team.B), Undo(), Goal(Team.A)])

    snapshot = tally.apply(Reset())

    assert snapshot == TallySnapshot(score_a=0, score_b=0, epoch=1, sequence=0)


def test_undo_after_reset_is_noop():
    tally = SessionTally()
    apply_all(tally, [Goal(Team.A), Reset()])

    snapshot = tally.apply(Undo())

    assert (snapshot.score_a, snapshot.score_b) == (0, 0)
    assert snapshot.sequence == 1
    assert tally.ignored_commands == 1


def test_undo_history_is_bounded():
    tally = SessionTally(undo_depth=2)
    apply_all(tally, [Goal(Team.A), Goal(Team.A), Goal(Team.A)])

    apply_all(tally, [Undo(), Undo(), Undo()])

    assert tally.current().score_a == 1


def test_invalid_undo_depth():
    with pytest.raises(ValueError):
        SessionTally(undo_depth=0)


def test_unknown_event_type_rejected():
    tally = SessionTally()

    with pytest.raises(TypeError):
        tally.apply("goal")

    assert tally.current().sequence == 0


def test_goal_with_plain_team_string_scores_for_that_team():
    tally = SessionTally()

    snapshot = tally.apply(Goal("A"))
    assert (snapshot.score_a, snapshot.score_b) == (1, 0)

    snapshot = tally.apply(Undo())
    assert (snapshot.score_a, snapshot.score_b) == (0, 0)


def test_goal_for_unknown_team_rejected():
    tally = SessionTally()
    tally.apply(Goal(Team.B))

    with pytest.raises(ValueError):
        tally.apply(Goal("Z"))

    assert tally.current() == TallySnapshot(score_a=0, score_b=1, epoch=0, sequence=1)
    assert tally.undo_depth == 1


# ---------------------------------------------------------
# Invariants over random sequences
# ---------------------------------------------------------

@pytest.mark.parametrize("seed", range(10))
def test_invariants_hold_for_random_sequences(seed):
    tally = SessionTally()
    previous = tally.current()

    for event in random_events(seed):
        snapshot = tally.apply(event)

        assert snapshot.score_a >= 0
        assert snapshot.score_b >= 0

        if isinstance(event, Reset):
            assert snapshot.epoch == previous.epoch + 1
            assert snapshot.sequence == 0
        else:
            assert snapshot.epoch == previous.epoch
            assert snapshot.sequence == previous.sequence + 1

        previous = snapshot


# ---------------------------------------------------------
# Concurrency
# ---------------------------------------------------------

def test_concurrent_apply_is_serialized():
    tally = SessionTally()
    per_thread = 500

    def worker(team):
        for _ in range(per_thread):
            tally.apply(Goal(team))

    threads = [
        threading.Thread(target=worker, args=(team,))
        for team in (Team.A, Team.B, Team.A, Team.B)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    final = tally.current()
    assert final.score_a == 2 * per_thread
    assert final.score_b == 2 * per_thread
    assert final.sequence == 4 * per_thread


# ---------------------------------------------------------
# Snapshot helpers
# ---------------------------------------------------------

def test_snapshot_leader_and_document():
    snapshot = TallySnapshot(score_a=1, score_b=3, epoch=2, sequence=7)

    assert snapshot.leader is Team.B
    assert snapshot.key == (2, 7)
    assert snapshot.to_document() == {
        "score_a": 1,
        "score_b": 3,
        "epoch": 2,
        "sequence": 7,
    }
    assert TallySnapshot(score_a=2, score_b=2).leader is None


def test_snapshot_score_for_accepts_plain_team_string():
    snapshot = TallySnapshot(score_a=4, score_b=1)

    assert snapshot.score_for(Team.A) == 4
    assert snapshot.score_for("A") == 4
    assert snapshot.score_for("B") == 1
