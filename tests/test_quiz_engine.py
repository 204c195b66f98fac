"""
Unit tests for the QuizEngine state machine.
"""
import unittest
import random

from quizcycle.data_manager import InMemoryQuestionBank
from quizcycle.errors import QuizConfigurationError
from quizcycle.models import AnswerEvent, Difficulty, Phase, QuizSettings
from quizcycle.quiz_engine import QuizEngine, QuizEventListener
from tests.test_fixtures import TestFixtures, RecordingListener


def play_through(engine: QuizEngine, label: str = "A") -> None:
    """Answer every question with the same label until the session completes."""
    guard = 0
    while not engine.is_complete:
        if engine.phase is Phase.AWAITING_ANSWER:
            engine.answer(label)
        else:
            engine.tick(engine.feedback_remaining)
        guard += 1
        if guard > 1000:
            raise AssertionError("Session did not complete")


class TestQuizEngineProgression(unittest.TestCase):
    """Tier progression, skipping and completion."""

    def setUp(self):
        self.listener = RecordingListener()

    def test_start_presents_first_question(self):
        """Test start presents first question."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()

        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)
        views = self.listener.of_kind('question')
        self.assertEqual(len(views), 1)
        self.assertEqual(views[0].question_text, "easy 0")
        self.assertEqual(views[0].ordered_option_labels, ("A", "B", "C", "D"))
        self.assertEqual(views[0].time_remaining, 10.0)
        self.assertTrue(views[0].hint_available)
        self.assertEqual(views[0].difficulty, "easy")
        self.assertEqual((views[0].question_number, views[0].round_size), (1, 2))

    def test_nothing_happens_before_start(self):
        """Test nothing happens before start."""
        engine = TestFixtures.create_engine(listener=self.listener)

        self.assertFalse(engine.answer("A"))
        self.assertEqual(engine.use_hint(), [])
        engine.tick(5.0)
        self.assertEqual(self.listener.events, [])
        self.assertFalse(engine.is_started)

    def test_start_is_idempotent(self):
        """Test start is idempotent."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.start()
        self.assertEqual(len(self.listener.of_kind('question')), 1)

    def test_empty_middle_tier_is_skipped(self):
        """Test empty middle tier is skipped."""
        bank = TestFixtures.create_question_bank(easy=2, medium=0, hard=1)
        engine = TestFixtures.create_engine(bank, listener=self.listener)
        engine.start()
        play_through(engine)

        difficulties = [view.difficulty for view in self.listener.of_kind('question')]
        self.assertEqual(difficulties, ["easy", "easy", "hard"])
        self.assertEqual(engine.result.total_questions_seen, 3)
        self.assertEqual(engine.result.correct_count, 3)
        self.assertEqual(engine.total_planned, 3)

    def test_missing_tier_is_skipped(self):
        """Test missing tier is skipped."""
        bank = InMemoryQuestionBank({"hard": [TestFixtures.make_question("only")]})
        engine = TestFixtures.create_engine(bank, listener=self.listener)
        engine.start()

        self.assertEqual(engine.current_difficulty, "hard")
        play_through(engine)
        self.assertEqual(engine.result.total_questions_seen, 1)

    def test_total_seen_matches_non_empty_tiers(self):
        """Test total seen matches non empty tiers."""
        bank = TestFixtures.create_question_bank(easy=3, medium=2, hard=0)
        engine = TestFixtures.create_engine(bank)
        engine.start()
        play_through(engine, label="B")

        self.assertEqual(engine.result.total_questions_seen, 5)
        self.assertEqual(engine.result.correct_count, 0)

    def test_all_tiers_empty_completes_immediately(self):
        """Test all tiers empty completes immediately."""
        bank = TestFixtures.create_question_bank(easy=0, medium=0, hard=0)
        engine = TestFixtures.create_engine(bank, listener=self.listener)
        engine.start()

        self.assertTrue(engine.is_complete)
        self.assertEqual(self.listener.of_kind('question'), [])
        results = self.listener.of_kind('complete')
        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].is_empty)
        self.assertFalse(results[0].aborted)

    def test_session_completes_exactly_once(self):
        """Test session completes exactly once."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        play_through(engine)

        engine.tick(5.0)
        engine.answer("A")
        engine.load_next_difficulty()
        engine.abort()

        results = self.listener.of_kind('complete')
        self.assertEqual(len(results), 1)
        self.assertIs(results[0], engine.result)
        self.assertEqual(results[0].score_text, "Quiz Score: 3/3")

    def test_custom_tier_order(self):
        """Test custom tier order."""
        settings = TestFixtures.create_settings(difficulties=["hard", "easy"])
        engine = TestFixtures.create_engine(settings=settings, listener=self.listener)
        engine.start()
        play_through(engine)

        difficulties = [view.difficulty for view in self.listener.of_kind('question')]
        self.assertEqual(difficulties, ["hard", "easy", "easy"])

    def test_enum_tiers_accepted(self):
        """Test enum tiers accepted."""
        settings = TestFixtures.create_settings(difficulties=[Difficulty.EASY])
        engine = TestFixtures.create_engine(settings=settings)
        engine.start()
        self.assertEqual(engine.current_difficulty, "easy")

    def test_questions_are_shuffled_per_round(self):
        """Test questions are shuffled per round."""
        bank = TestFixtures.create_question_bank(easy=6, medium=0, hard=0)
        engine = QuizEngine(bank, settings=TestFixtures.create_settings(), rng=random.Random(3))
        listener = RecordingListener()
        engine.add_listener(listener)
        engine.start()
        play_through(engine)

        texts = [view.question_text for view in listener.of_kind('question')]
        self.assertEqual(sorted(texts), [f"easy {i}" for i in range(6)])
        for view in listener.of_kind('question'):
            self.assertEqual(sorted(view.ordered_option_labels), ["A", "B", "C", "D"])


class TestQuizEngineAnswers(unittest.TestCase):
    """Answer evaluation and feedback holds."""

    def setUp(self):
        self.listener = RecordingListener()

    def test_correct_answer_scores(self):
        """Test correct answer scores."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()

        self.assertTrue(engine.answer("A"))
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)
        feedback = self.listener.of_kind('feedback')[0]
        self.assertTrue(feedback.chosen_is_correct)
        self.assertEqual(feedback.chosen_option_label, "A")
        self.assertEqual(feedback.correct_option_label, "A")
        self.assertIsNone(feedback.explanation_text)
        self.assertEqual((engine.correct_count, engine.total_questions_seen), (1, 1))

    def test_wrong_answer_counts_as_seen(self):
        """Test wrong answer counts as seen."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()

        self.assertTrue(engine.answer("C"))
        feedback = self.listener.of_kind('feedback')[0]
        self.assertFalse(feedback.chosen_is_correct)
        self.assertEqual(feedback.correct_option_label, "A")
        self.assertEqual((engine.correct_count, engine.total_questions_seen), (0, 1))

    def test_short_hold_without_explanation(self):
        """Test short hold without explanation."""
        engine = TestFixtures.create_engine()
        engine.start()
        engine.answer("A")

        self.assertEqual(engine.last_feedback.hold_duration, 0.5)
        engine.tick(0.25)
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)
        engine.tick(0.25)
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)

    def test_explanation_hold_duration(self):
        """Test explanation hold duration."""
        bank = InMemoryQuestionBank({
            "easy": [
                TestFixtures.make_question("explained", explanation="Because A."),
                TestFixtures.make_question("next"),
            ]
        })
        engine = TestFixtures.create_engine(bank, listener=self.listener)
        engine.start()
        engine.answer("A")

        feedback = self.listener.of_kind('feedback')[0]
        self.assertEqual(feedback.hold_duration, 2.0)
        self.assertEqual(feedback.explanation_text, "Because A.")
        self.assertEqual(engine.feedback_remaining, 2.0)

        engine.tick(1.5)
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)
        self.assertEqual(engine.feedback_remaining, 0.5)
        engine.tick(0.5)
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)
        self.assertEqual(engine.current_question.text, "next")

    def test_whitespace_explanation_uses_short_hold(self):
        """Test whitespace explanation uses short hold."""
        bank = InMemoryQuestionBank({"easy": [TestFixtures.make_question("q", explanation="   ")]})
        engine = TestFixtures.create_engine(bank)
        engine.start()
        engine.answer("A")
        self.assertEqual(engine.last_feedback.hold_duration, 0.5)
        self.assertIsNone(engine.last_feedback.explanation_text)

    def test_late_answers_are_ignored(self):
        """Test late answers are ignored."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.answer("B")

        self.assertFalse(engine.answer("A"))
        self.assertFalse(engine.submit_answer(AnswerEvent.timeout()))
        self.assertEqual((engine.correct_count, engine.total_questions_seen), (0, 1))
        self.assertEqual(len(self.listener.of_kind('feedback')), 1)

    def test_unknown_label_is_ignored(self):
        """Test unknown label is ignored."""
        engine = TestFixtures.create_engine()
        engine.start()

        self.assertFalse(engine.answer("Z"))
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)
        self.assertEqual(engine.total_questions_seen, 0)

    def test_answer_matched_by_label_not_position(self):
        """Test answer matched by label not position."""
        bank = InMemoryQuestionBank({
            "easy": [TestFixtures.make_question("q", answer="C", options=["A", "B", "C", "D"])]
        })
        engine = QuizEngine(bank, settings=TestFixtures.create_settings(), rng=random.Random(11))
        engine.start()

        self.assertIn("C", engine.visible_options)
        engine.answer("C")
        self.assertTrue(engine.last_feedback.chosen_is_correct)

    def test_integrity_error_scored_incorrect(self):
        """Test integrity error scored incorrect."""
        bank = InMemoryQuestionBank({
            "easy": [TestFixtures.make_question(
                "broken", answer="A", options=["B", "C"], explanation="A was meant to be listed."
            )]
        })
        engine = TestFixtures.create_engine(bank, listener=self.listener)
        with self.assertLogs('quizcycle.quiz_engine', level='ERROR'):
            engine.start()

        self.assertTrue(engine.answer("B"))
        feedback = self.listener.of_kind('feedback')[0]
        self.assertFalse(feedback.chosen_is_correct)
        self.assertTrue(feedback.integrity_error)
        self.assertEqual(feedback.correct_option_label, "A")
        self.assertEqual(feedback.explanation_text, "A was meant to be listed.")

        play_through(engine)
        self.assertEqual(engine.result.total_questions_seen, 1)
        self.assertEqual(engine.result.correct_count, 0)

    def test_listener_errors_do_not_break_engine(self):
        """Test listener errors do not break engine."""
        class Exploding(QuizEventListener):
            def on_question(self, view):
                raise RuntimeError("renderer down")

        engine = TestFixtures.create_engine()
        engine.add_listener(Exploding())
        engine.add_listener(self.listener)

        with self.assertLogs('quizcycle.quiz_engine', level='ERROR') as logs:
            engine.start()

        self.assertTrue(any("on_question" in line for line in logs.output))
        self.assertEqual(len(self.listener.of_kind('question')), 1)
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)

    def test_removed_listener_receives_nothing(self):
        """Test removed listener receives nothing."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.remove_listener(self.listener)
        engine.start()
        self.assertEqual(self.listener.events, [])


class TestQuizEngineTimer(unittest.TestCase):
    """Countdown and timeout behaviour driven by tick()."""

    def setUp(self):
        self.listener = RecordingListener()

    def test_tick_counts_down_and_emits(self):
        """Test tick counts down and emits."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.tick(4.0)

        self.assertEqual(engine.time_remaining, 6.0)
        self.assertEqual(self.listener.of_kind('tick'), [6.0])

    def test_timeout_is_scored_incorrect(self):
        """Test timeout is scored incorrect."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.tick(10.0)

        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)
        feedback = self.listener.of_kind('feedback')[0]
        self.assertTrue(feedback.via_timeout)
        self.assertFalse(feedback.chosen_is_correct)
        self.assertIsNone(feedback.chosen_option_label)
        self.assertEqual((engine.correct_count, engine.total_questions_seen), (0, 1))
        self.assertEqual(engine.time_remaining, 0.0)
        self.assertEqual(self.listener.of_kind('tick'), [])

    def test_timeout_after_many_small_ticks(self):
        """Test timeout after many small ticks."""
        engine = TestFixtures.create_engine()
        engine.start()
        for _ in range(39):
            engine.tick(0.25)
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)
        engine.tick(0.25)
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)
        self.assertTrue(engine.last_feedback.via_timeout)

    def test_timeout_with_float_drift(self):
        """Test timeout with float drift."""
        settings = TestFixtures.create_settings(time_per_question=1.0)
        engine = TestFixtures.create_engine(settings=settings)
        engine.start()
        for _ in range(10):
            engine.tick(0.1)
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)

    def test_overshooting_tick_clamps_to_zero(self):
        """Test overshooting tick clamps to zero."""
        engine = TestFixtures.create_engine()
        engine.start()
        engine.tick(25.0)
        self.assertEqual(engine.time_remaining, 0.0)
        self.assertEqual(engine.total_questions_seen, 1)

    def test_timer_restarts_for_next_question(self):
        """Test timer restarts for next question."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.tick(7.0)
        engine.answer("A")
        engine.tick(0.5)

        self.assertEqual(engine.time_remaining, 10.0)
        self.assertEqual(self.listener.of_kind('question')[1].time_remaining, 10.0)

    def test_answer_stops_countdown(self):
        """Test answer stops countdown."""
        engine = TestFixtures.create_engine()
        engine.start()
        engine.tick(3.0)
        engine.answer("B")
        engine.tick(0.25)

        self.assertEqual(engine.total_questions_seen, 1)
        self.assertEqual(engine.phase, Phase.SHOWING_FEEDBACK)

    def test_negative_tick_rejected(self):
        """Test negative tick rejected."""
        engine = TestFixtures.create_engine()
        engine.start()
        with self.assertRaises(ValueError):
            engine.tick(-0.25)

    def test_timeout_event_cannot_carry_choice(self):
        """Test timeout event cannot carry choice."""
        with self.assertRaises(ValueError):
            AnswerEvent(chosen_option_value="A", via_timeout=True)
        with self.assertRaises(ValueError):
            AnswerEvent(chosen_option_value=None, via_timeout=False)


class TestQuizEngineHints(unittest.TestCase):
    """Hint usage through the engine."""

    def setUp(self):
        self.listener = RecordingListener()

    def test_hint_hides_two_of_three_distractors(self):
        """Test hint hides two of three distractors."""
        engine = TestFixtures.create_engine(rng=random.Random(7), listener=self.listener)
        engine.start()

        hidden = engine.use_hint()
        self.assertEqual(len(hidden), 2)
        self.assertNotIn("A", hidden)
        self.assertIn("A", engine.visible_options)
        self.assertEqual(len(engine.visible_options), 2)
        self.assertEqual(engine.hints_remaining, 0)
        self.assertFalse(engine.hint_available)
        self.assertEqual(self.listener.of_kind('hint'), [(hidden, 0)])

    def test_second_hint_is_noop(self):
        """Test second hint is noop."""
        engine = TestFixtures.create_engine(rng=random.Random(7), listener=self.listener)
        engine.start()
        engine.use_hint()
        visible = engine.visible_options

        self.assertEqual(engine.use_hint(), [])
        self.assertEqual(engine.visible_options, visible)
        self.assertEqual(len(self.listener.of_kind('hint')), 1)

    def test_hidden_option_cannot_be_answered(self):
        """Test hidden option cannot be answered."""
        engine = TestFixtures.create_engine(rng=random.Random(7))
        engine.start()
        hidden = engine.use_hint()

        self.assertFalse(engine.answer(hidden[0]))
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)

    def test_hint_with_two_distractors_hides_both(self):
        """Test hint with two distractors hides both."""
        bank = InMemoryQuestionBank({
            "easy": [TestFixtures.make_question("q", options=["A", "B", "C"])]
        })
        engine = TestFixtures.create_engine(bank, rng=random.Random(1))
        engine.start()

        self.assertEqual(sorted(engine.use_hint()), ["B", "C"])
        self.assertEqual(engine.visible_options, ["A"])

    def test_hint_not_available_during_feedback(self):
        """Test hint not available during feedback."""
        engine = TestFixtures.create_engine()
        engine.start()
        engine.answer("A")

        self.assertEqual(engine.use_hint(), [])
        self.assertEqual(engine.hints_remaining, 1)

    def test_hints_persist_across_questions_visibility_resets(self):
        """Test hints persist across questions visibility resets."""
        settings = TestFixtures.create_settings(hint_count=2)
        engine = TestFixtures.create_engine(settings=settings, rng=random.Random(5), listener=self.listener)
        engine.start()
        engine.use_hint()
        engine.answer("A")
        engine.tick(0.5)

        second = self.listener.of_kind('question')[1]
        self.assertTrue(second.hint_available)
        self.assertEqual(engine.hints_remaining, 1)
        self.assertEqual(engine.visible_options, ["A", "B", "C", "D"])

    def test_hint_affordance_hidden_once_spent(self):
        """Test hint affordance hidden once spent."""
        engine = TestFixtures.create_engine(rng=random.Random(5), listener=self.listener)
        engine.start()
        engine.use_hint()
        engine.answer("A")
        engine.tick(0.5)

        self.assertFalse(self.listener.of_kind('question')[1].hint_available)

    def test_no_hints_configured(self):
        """Test no hints configured."""
        settings = TestFixtures.create_settings(hint_count=0)
        engine = TestFixtures.create_engine(settings=settings, listener=self.listener)
        engine.start()

        self.assertFalse(self.listener.of_kind('question')[0].hint_available)
        self.assertEqual(engine.use_hint(), [])

    def test_hint_ignored_when_answer_key_broken(self):
        """Test a question missing its correct answer keeps every option visible."""
        bank = InMemoryQuestionBank({
            "easy": [TestFixtures.make_question("broken", answer="Z", options=["B", "C"])]
        })
        engine = TestFixtures.create_engine(bank, rng=random.Random(1), listener=self.listener)
        with self.assertLogs('quizcycle.quiz_engine', level='ERROR'):
            engine.start()

        self.assertFalse(self.listener.of_kind('question')[0].hint_available)
        self.assertFalse(engine.hint_available)
        self.assertEqual(engine.use_hint(), [])
        self.assertEqual(engine.visible_options, ["B", "C"])
        self.assertEqual(engine.hints_remaining, 1)
        self.assertEqual(self.listener.of_kind('hint'), [])


class TestQuizEngineAbort(unittest.TestCase):
    """External teardown."""

    def setUp(self):
        self.listener = RecordingListener()

    def test_abort_while_awaiting(self):
        """Test abort while awaiting."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.answer("A")
        engine.tick(0.5)

        result = engine.abort("player left")
        self.assertTrue(engine.is_complete)
        self.assertTrue(result.aborted)
        self.assertEqual((result.correct_count, result.total_questions_seen), (1, 1))

    def test_abort_during_feedback_hold(self):
        """Test abort during feedback hold."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        engine.answer("B")

        result = engine.abort()
        engine.tick(5.0)

        self.assertTrue(result.aborted)
        self.assertEqual(engine.phase, Phase.COMPLETE)
        self.assertEqual(len(self.listener.of_kind('question')), 1)
        self.assertEqual(len(self.listener.of_kind('complete')), 1)

    def test_abort_twice_returns_same_result(self):
        """Test abort twice returns same result."""
        engine = TestFixtures.create_engine(listener=self.listener)
        engine.start()
        first = engine.abort()
        second = engine.abort()

        self.assertIs(first, second)
        self.assertEqual(len(self.listener.of_kind('complete')), 1)

    def test_abort_before_start(self):
        """Test abort before start."""
        engine = TestFixtures.create_engine(listener=self.listener)
        result = engine.abort()

        self.assertTrue(result.is_empty)
        engine.start()
        self.assertEqual(self.listener.of_kind('question'), [])


class TestQuizEngineInvariants(unittest.TestCase):
    """Properties that hold over arbitrary play."""

    def test_correct_never_exceeds_seen(self):
        """Test correct never exceeds seen."""
        for seed in range(20):
            rng = random.Random(seed)
            bank = TestFixtures.create_question_bank(easy=3, medium=2, hard=3)
            settings = TestFixtures.create_settings(hint_count=2)
            engine = QuizEngine(bank, settings=settings, rng=random.Random(seed))
            engine.start()

            steps = 0
            while not engine.is_complete and steps < 2000:
                action = rng.random()
                if action < 0.3 and engine.visible_options:
                    engine.answer(rng.choice(engine.visible_options))
                elif action < 0.4:
                    engine.use_hint()
                elif action < 0.45:
                    engine.answer("A")
                else:
                    engine.tick(rng.choice([0.25, 0.5, 1.0, 3.0]))
                state = engine.state
                self.assertLessEqual(state.correct_count, state.total_questions_seen)
                steps += 1

            self.assertTrue(engine.is_complete)
            self.assertEqual(engine.result.total_questions_seen, 8)

    def test_state_snapshot_is_detached(self):
        """Test state snapshot is detached."""
        engine = TestFixtures.create_engine()
        engine.start()

        snapshot = engine.state
        snapshot.correct_count = 99
        snapshot.current_round.question_index = 5

        self.assertEqual(engine.correct_count, 0)
        self.assertEqual(engine.current_question.text, "easy 0")

    def test_option_slots_are_copies(self):
        """Test option slots are copies."""
        engine = TestFixtures.create_engine()
        engine.start()
        engine.option_slots[0].visible = False
        self.assertEqual(len(engine.visible_options), 4)


class TestQuizEngineConfiguration(unittest.TestCase):
    """Settings validation at construction."""

    def test_defaults(self):
        """Test defaults."""
        engine = QuizEngine(InMemoryQuestionBank())
        self.assertEqual(engine.settings.time_per_question, 10.0)
        self.assertEqual(engine.settings.difficulties, ["easy", "medium", "hard"])
        self.assertEqual(engine.hints_remaining, 1)

    def test_invalid_settings_rejected(self):
        """Test invalid settings rejected."""
        invalid = [
            QuizSettings(time_per_question=0),
            QuizSettings(explanation_duration=-1),
            QuizSettings(feedback_duration=-0.5),
            QuizSettings(hint_count=-1),
            QuizSettings(hint_removal_count=0),
            QuizSettings(difficulties=[]),
        ]
        for settings in invalid:
            with self.subTest(settings=settings):
                with self.assertRaises(QuizConfigurationError):
                    QuizEngine(InMemoryQuestionBank(), settings=settings)

    def test_zero_feedback_duration_advances_on_next_tick(self):
        """Test zero feedback duration advances on next tick."""
        settings = TestFixtures.create_settings(feedback_duration=0.0)
        engine = TestFixtures.create_engine(settings=settings)
        engine.start()
        engine.answer("A")
        engine.tick(0.0)
        self.assertEqual(engine.phase, Phase.AWAITING_ANSWER)


if __name__ == '__main__':
    unittest.main()
