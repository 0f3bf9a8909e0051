import random
from collections import Counter
from datetime import timedelta

import pytest

from repertoire_trainer.core.lines import CustomLine, OpeningLine
from repertoire_trainer.core.move_judge import SubmittedMove
from repertoire_trainer.core.opening_manager import OpeningManager
from repertoire_trainer.core.practice_service import PracticeService
from repertoire_trainer.core.progress_ledger import ProgressLedger
from repertoire_trainer.core.rules_oracle import ChessRulesOracle
from repertoire_trainer.database.database import make_engine, make_session_factory
from repertoire_trainer.errors import CollaboratorUnavailable, LineNotFoundError

# 40 ply：雙方馬來回跳
KNIGHT_SHUFFLE_40 = ["Nf3", "Nf6", "Ng1", "Ng8"] * 10


@pytest.fixture
def scenario_opening(manager):
    return manager.add_opening("King's Knight", ["e4", "e5", "Nf3"], eco="C40", category="Open Game")


class ExplodingOracle(ChessRulesOracle):
    def apply_move(self, position, san):
        raise RuntimeError("engine crashed")

    def play(self, position, from_square, to_square, promotion=None):
        raise RuntimeError("engine crashed")


class TestGetPracticePosition:

    def test_opening_mode_samples_learner_plies(self, service, user, ruy_lopez):
        line = OpeningLine(ruy_lopez.id)
        plies = {service.get_practice_position(user.id, "opening", line).ply for _ in range(60)}
        assert plies == {0, 2, 4}

    def test_position_shape(self, service, user, scenario_opening):
        line = OpeningLine(scenario_opening.id)
        positions = [service.get_practice_position(user.id, "opening", line) for _ in range(30)]
        position = next(p for p in positions if p.ply == 2)
        assert position.expected_move == "Nf3"
        assert position.preceding_moves == ["e4", "e5"]
        assert position.line_display_name == "King's Knight"
        assert position.line == line

    def test_variation_line(self, service, manager, user, scenario_opening):
        variation = manager.add_variation(scenario_opening.id, "Bishop", ["Bc4"], 2)
        line = OpeningLine(scenario_opening.id, variation.id)
        position = service.get_practice_position(user.id, "opening", line)
        assert position.line_display_name == "King's Knight: Bishop"
        assert position.ply in (0, 2)
        if position.ply == 2:
            assert position.expected_move == "Bc4"

    def test_custom_mode_uses_custom_color(self, service, manager, user):
        custom = manager.add_custom_opening(user.id, "My Caro", ["e4", "c6", "d4", "d5"], "black")
        plies = {service.get_practice_position(user.id, "custom", CustomLine(custom.id)).ply
                 for _ in range(40)}
        assert plies == {1, 3}

    def test_nothing_to_practice_is_none(self, service, manager, user):
        opening = manager.add_opening("One Move", ["e4"])
        assert service.get_practice_position(user.id, "opening", OpeningLine(opening.id, None, "black")) is None

    def test_custom_line_of_other_user_is_not_found(self, service, manager, user, other_user):
        custom = manager.add_custom_opening(other_user.id, "Bob's", ["d4"], "white")
        with pytest.raises(LineNotFoundError):
            service.get_practice_position(user.id, "custom", CustomLine(custom.id))

    def test_mode_must_match_reference(self, service, user, ruy_lopez):
        with pytest.raises(ValueError):
            service.get_practice_position(user.id, "custom", OpeningLine(ruy_lopez.id))

    def test_stack_mode_respects_practice_plies(self, service, manager, user, ruy_lopez):
        stack = manager.create_stack(user.id, "Open games")
        manager.add_stack_member(stack.id, OpeningLine(ruy_lopez.id), practice_plies=[4])
        for _ in range(10):
            position = service.get_practice_position(user.id, "stack", stack.id)
            assert position.ply == 4
            assert position.expected_move == "Bb5"

    def test_empty_stack_is_none(self, service, manager, user):
        stack = manager.create_stack(user.id, "Empty")
        assert service.get_practice_position(user.id, "stack", stack.id) is None

    def test_stack_lines_sampled_evenly(self, service, manager, user):
        short = manager.add_custom_opening(user.id, "Short", ["e4", "e5"], "white")
        long = manager.add_custom_opening(user.id, "Long", KNIGHT_SHUFFLE_40, "white")
        stack = manager.create_stack(user.id, "Mixed")
        manager.add_stack_member(stack.id, CustomLine(short.id))
        manager.add_stack_member(stack.id, CustomLine(long.id))

        counts = Counter(
            service.get_practice_position(user.id, "stack", stack.id).line_display_name
            for _ in range(600)
        )
        assert abs(counts["Short"] / 600 - 0.5) < 0.08
        assert abs(counts["Long"] / 600 - 0.5) < 0.08

    def test_stack_of_other_user_is_not_found(self, service, manager, user, other_user):
        stack = manager.create_stack(other_user.id, "Bob's stack")
        with pytest.raises(LineNotFoundError):
            service.get_practice_position(user.id, "stack", stack.id)


class TestSubmitAttempt:

    def _nf3_position(self, service, user, opening):
        line = OpeningLine(opening.id)
        candidate = service.candidates_for(user.id, line)[-1]
        return line, candidate

    def test_correct_attempt_is_recorded(self, service, user, scenario_opening):
        line, c = self._nf3_position(service, user, scenario_opening)
        result = service.submit_attempt(user.id, line, c.ply, c.position_before_move,
                                        SubmittedMove("g1", "f3"), c.expected_move)
        assert result.accepted and result.correct
        assert result.expected_move_if_wrong is None
        record = service.ledger.get_record(user.id, line, 2)
        assert (record.correct_count, record.incorrect_count) == (1, 0)
        assert record.position_fen == c.position_before_move

    def test_wrong_attempt_is_recorded(self, service, user, scenario_opening):
        line, c = self._nf3_position(service, user, scenario_opening)
        result = service.submit_attempt(user.id, line, c.ply, c.position_before_move,
                                        SubmittedMove("g1", "h3"), c.expected_move)
        assert result.accepted
        assert result.correct is False
        assert result.expected_move_if_wrong == "Nf3"
        assert service.ledger.get_record(user.id, line, 2).incorrect_count == 1

    def test_illegal_attempt_is_not_recorded(self, service, user, scenario_opening):
        line, c = self._nf3_position(service, user, scenario_opening)
        result = service.submit_attempt(user.id, line, c.ply, c.position_before_move,
                                        SubmittedMove("e1", "e3"), c.expected_move)
        assert not result.accepted
        assert result.reason == "illegal"
        assert service.ledger.get_record(user.id, line, 2) is None

    def test_unparseable_position_is_rejected(self, service, user, scenario_opening):
        result = service.submit_attempt(user.id, OpeningLine(scenario_opening.id), 0,
                                        "not a fen", SubmittedMove("e2", "e4"), "e4")
        assert not result.accepted

    def test_missing_line_is_not_found(self, service, user, oracle):
        with pytest.raises(LineNotFoundError):
            service.submit_attempt(user.id, OpeningLine(999), 0, oracle.initial_position(),
                                   SubmittedMove("e2", "e4"), "e4")

    def test_custom_line_of_other_user_is_rejected(self, service, manager, user, other_user, oracle):
        custom = manager.add_custom_opening(other_user.id, "Bob's", ["d4"], "white")
        line = CustomLine(custom.id)
        with pytest.raises(LineNotFoundError):
            service.submit_attempt(user.id, line, 0, oracle.initial_position(),
                                   SubmittedMove("d2", "d4"), "d4")
        assert service.ledger.get_record(user.id, line, 0) is None

    def test_oracle_failure_leaves_ledger_untouched(self, manager, ledger, user, scenario_opening):
        service = PracticeService(manager, ledger, ExplodingOracle())
        line = OpeningLine(scenario_opening.id)
        with pytest.raises(CollaboratorUnavailable):
            service.submit_attempt(user.id, line, 0, ChessRulesOracle().initial_position(),
                                   SubmittedMove("e2", "e4"), "e4")
        assert ledger.get_record(user.id, line, 0) is None

    def test_oracle_failure_while_generating(self, manager, ledger, user, scenario_opening):
        service = PracticeService(manager, ledger, ExplodingOracle())
        with pytest.raises(CollaboratorUnavailable):
            service.get_practice_position(user.id, "opening", OpeningLine(scenario_opening.id))


class TestReviews:

    def test_next_review_without_record(self, service, user, ruy_lopez, clock):
        assert service.get_next_review(user.id, OpeningLine(ruy_lopez.id), 0) == clock.now + timedelta(days=1)

    def test_next_review_after_attempts(self, service, user, ruy_lopez, clock):
        line = OpeningLine(ruy_lopez.id)
        practiced = clock.now
        service.ledger.record_attempt(user.id, line, 0, True)
        clock.advance(days=2)
        assert service.get_next_review(user.id, line, 0) == practiced + timedelta(days=7)

    def test_due_reviews_weakest_first(self, service, user, ruy_lopez, clock):
        line = OpeningLine(ruy_lopez.id)
        service.ledger.record_attempt(user.id, line, 0, True)
        service.ledger.record_attempt(user.id, line, 2, False)
        service.ledger.record_attempt(user.id, line, 4, True)
        service.ledger.record_attempt(user.id, line, 4, False)

        assert [r.ply for r in service.due_reviews(user.id, clock.now + timedelta(hours=7))] == [2]
        assert [r.ply for r in service.due_reviews(user.id, clock.now + timedelta(days=8))] == [2, 4, 0]

    def test_progress_summary(self, service, user, ruy_lopez):
        line = OpeningLine(ruy_lopez.id)
        service.ledger.record_attempt(user.id, line, 0, True)
        service.ledger.record_attempt(user.id, line, 2, False)
        summary = service.progress_summary(user.id)
        assert summary.total_attempts == 2
        assert summary.overall_accuracy == 50
        assert summary.current_streak == 1


class TestStorageUnavailable:

    def test_unreachable_database_is_retryable(self, tmp_path):
        broken = make_engine(f"sqlite:///{(tmp_path / 'missing' / 'nowhere.db').as_posix()}")
        factory = make_session_factory(broken)
        service = PracticeService(OpeningManager(factory), ProgressLedger(factory),
                                  rng=random.Random(1))
        with pytest.raises(CollaboratorUnavailable) as exc_info:
            service.get_practice_position(1, "opening", OpeningLine(1))
        assert exc_info.value.retryable

    def test_legal_destinations_passthrough(self, service, oracle):
        assert service.legal_destinations(oracle.initial_position(), "b1") == {"a3", "c3"}
