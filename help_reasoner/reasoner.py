"""
Reasoner: decides tick by tick whether to intervene for the user.

Telemetry samples are buffered into a state, the policy picks an action
(stay silent, ask the user, show help), and the reasoner then waits for
feedback, either explicit from the UI or inferred from user inactivity.
Feedback is turned into a reward, the post-action state is collected, and
the action-value table(s) receive a temporal-difference update.

Lifecycle:
    collecting-before --(buffer ready)--> predict --> awaiting-feedback
    awaiting-feedback --(feedback / idle timeout)--> update --> collecting-before

Disable and pause are modifiers layered on top: while either is set,
telemetry is ignored. A pause that is not lifted before
``unfreeze_timeout`` resets the session.

All public methods and timer ticks run under one re-entrant lock, so the
reasoner may be fed from any thread.
"""
from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from collections import deque
from collections.abc import Mapping
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from .config import ReasonerConfig
from .learning.action_value import ActionValueTable
from .learning.aggregator import aggregate_states
from .learning.policy import PolicySelector, estimate_mood
from .learning.reward import RewardEvaluator
from .learning.temporal_difference import TDResult, double_q_update, q_update
from .logging_config import event
from .metrics import MetricsCollector
from .preprocessing import FeaturePreprocessor, extract_gaze
from .timers import Clock, Scheduler, WaitSlots, thread_scheduler
from .types import Action, CollectPhase, Feedback, Sample, UserMood

logger = logging.getLogger(__name__)

Preprocessor = Callable[[Mapping], Optional[Sequence[float]]]
GazeExtractor = Callable[[Sequence[str], Sequence[Sequence[Any]]], Any]

# Wait kinds
WAIT_FEEDBACK = "feedback"
WAIT_ESTIMATE = "estimate"
WAIT_NEXT_STATE = "next_state"
WAIT_UNFREEZE = "unfreeze"


class Reasoner:
    """
    Online Q-learning controller for help interventions.

    The action-value tables are built by ``load_model`` and survive every
    status reset; everything else is per-session state.

    Example:
        >>> reasoner = Reasoner(ReasonerConfig(prng_seed=7))
        >>> action = reasoner.on_telemetry({"fixations": 3, "scroll": 0.2})
        >>> reasoner.set_feedback("ok")
    """

    def __init__(
        self,
        config: Optional[ReasonerConfig] = None,
        preprocess: Optional[Preprocessor] = None,
        gaze_extractor: Optional[GazeExtractor] = None,
        on_episode_end: Optional[Callable[[], None]] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        session_id: Optional[str] = None,
    ):
        """
        Initialize the reasoner.

        Args:
            config: Learning and timing parameters
            preprocess: Turns an aggregated labeled sample into a feature
                vector; returns None when the sample cannot be processed
            gaze_extractor: Side channel storing gaze info at prediction time
            on_episode_end: Called once each time an episode completes
            clock: Monotonic time source in seconds
            scheduler: ``scheduler(delay, fn)`` runs fn after delay seconds
            session_id: Identifier used in logs
        """
        self.config = config or ReasonerConfig()
        self.preprocess = preprocess or FeaturePreprocessor()
        self.gaze_extractor = gaze_extractor or extract_gaze
        self.on_episode_end = on_episode_end
        self.session_id = session_id or uuid.uuid4().hex

        self.rng = random.Random(self.config.prng_seed)
        self.reward_evaluator = RewardEvaluator()
        self.metrics = MetricsCollector()

        self._lock = threading.RLock()
        self.waits = WaitSlots(
            tick_interval=self.config.tick_interval,
            clock=clock or time.monotonic,
            scheduler=scheduler or thread_scheduler,
            lock=self._lock,
        )

        # Enable/pause modifiers
        self.testing = self.config.testing
        self.is_active = not self.testing
        self.is_paused = False

        # Learning progress (kept across status resets)
        self.eps = self.config.exploration_rate
        self.t_current = 1
        self.episode = 0
        self.episode_step = 0
        self.user_status = UserMood.RELAXED

        # Session state
        self.reward = 0.0
        self.s_curr: Optional[List[float]] = None
        self.s_next: Optional[List[float]] = None
        self.last_action: Optional[Action] = None
        self.user_action: Optional[Feedback] = None
        self.stored_feedback: Optional[Feedback] = None
        self.waiting_feedback = False
        self.collect_phase = CollectPhase.BEFORE
        self.feature_names: Optional[List[str]] = None
        self.gaze_info: Any = []
        self.s_buffer: Deque[List[Any]] = deque(maxlen=self.config.buffer_size)
        self.s_next_buffer: Deque[List[Any]] = deque(maxlen=self.config.buffer_size)
        self._next_state_retried = False

        # Sub-models
        self.table_a: Optional[ActionValueTable] = None
        self.table_b: Optional[ActionValueTable] = None
        self.policy = PolicySelector(rng=self.rng)

        self.load_model(self.config.model_type)

    # ------------------------------------------------------------------
    # Model and status
    # ------------------------------------------------------------------

    def load_model(self, model_type: Optional[str] = None) -> None:
        """
        (Re)build the action-value table(s).

        This is the only operation that discards learned values. It also
        restarts the timestep and episode counters and the exploration rate.
        """
        with self._lock:
            if model_type is not None and model_type != self.config.model_type:
                self.config = self.config.with_overrides(model_type=model_type)

            self.reset_status()
            self.t_current = 1
            self.episode = 0
            self.episode_step = 0
            self.eps = self.config.exploration_rate

            self.table_a = None
            self.table_b = None
            if self.config.is_learning:
                self.table_a = self._new_table()
                if self.config.is_double:
                    self.table_b = self._new_table()
            self.policy = PolicySelector(self.table_a, self.table_b, rng=self.rng)

            logger.info(
                f"Model loaded: {self.config.model_type} "
                f"(alpha={self.config.learning_rate}, gamma={self.config.discount}, "
                f"eps={self.eps}, ucb={self.config.ucb_c})"
            )

    def _new_table(self) -> ActionValueTable:
        cfg = self.config
        return ActionValueTable(
            actions=list(Action),
            preferred_action=Action.parse(cfg.preferred_action) if cfg.preferred_action else None,
            excluded_action=Action.parse(cfg.excluded_action) if cfg.excluded_action else None,
            ucb_c=cfg.ucb_c,
            precision=cfg.state_precision,
            legacy_preferred_index=cfg.legacy_preferred_index,
            rng=self.rng,
        )

    def reset_status(self) -> None:
        """
        Forget the in-flight step and start collecting a fresh state.

        Learned values, exploration rate, mood estimate and the
        timestep/episode counters are kept.
        """
        with self._lock:
            self.waits.cancel_all()
            self.waiting_feedback = False
            self.collect_phase = CollectPhase.BEFORE
            self.reward = 0.0
            self.s_curr = None
            self.s_next = None
            self.last_action = None
            self.user_action = None
            self.stored_feedback = None
            self.feature_names = None
            self.gaze_info = []
            self.s_buffer.clear()
            self.s_next_buffer.clear()
            self._next_state_retried = False
            self.unfreeze()
            logger.debug("Reasoner status reset. Collecting new user state")

    def _self_heal(self, cause: str) -> None:
        logger.warning(f"Resetting reasoner: {cause}")
        self.metrics.increment(cause, subsystem="resets")
        self.reset_status()

    # ------------------------------------------------------------------
    # Enable / pause
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.is_active

    @property
    def paused(self) -> bool:
        return self.is_paused

    def enable(self) -> bool:
        """
        Turn the reasoner on.

        Returns:
            False if testing mode keeps it disabled
        """
        with self._lock:
            if self.testing:
                self.is_active = False
                logger.info("Reasoner kept disabled (testing mode)")
                return False
            self.is_active = True
            logger.info("Reasoner enabled")
            return True

    def disable(self) -> None:
        """Turn the reasoner off, dropping the in-flight step."""
        with self._lock:
            self.is_active = False
            logger.info("Reasoner disabled")
            self.reset_status()

    def set_enabled(self, enabled: bool) -> bool:
        """enable() or disable(); returns the resulting active flag."""
        if enabled:
            self.enable()
        else:
            self.disable()
        return self.is_active

    def freeze(self) -> None:
        """Pause the reasoner; it resets itself if not unfrozen in time."""
        with self._lock:
            logger.info("Freezing reasoner")
            self.is_paused = True
            self.waits.arm(
                WAIT_UNFREEZE,
                self.config.unfreeze_timeout,
                self._on_unfreeze_timeout,
                still_waiting=lambda: self.is_paused,
            )

    def unfreeze(self) -> None:
        with self._lock:
            if self.is_paused:
                logger.info("Unfreezing reasoner")
            self.is_paused = False
            self.waits.cancel(WAIT_UNFREEZE)

    def _on_unfreeze_timeout(self) -> None:
        event(logger, "auto_unfreeze", "Reasoner paused for too long. Resetting now.",
              session_id=self.session_id, timestep=self.t_current)
        self.metrics.increment("paused_too_long", subsystem="resets")
        self.reset_status()

    # ------------------------------------------------------------------
    # Telemetry and prediction
    # ------------------------------------------------------------------

    def on_telemetry(self, sample: Sample) -> Optional[Action]:
        """
        Ingest one telemetry sample.

        Args:
            sample: feature name -> value; every sample of a session must
                carry the same feature names

        Returns:
            Action.IGNORE if the sample was dropped, the chosen action if
            a prediction was made, None while still collecting
        """
        with self._lock:
            if not self.is_active:
                logger.debug("Ignore tracking data because reasoner disabled.")
                self.metrics.increment("disabled", subsystem="ignored")
                return Action.IGNORE
            if self.is_paused:
                logger.debug("Ignore tracking data because reasoner paused.")
                self.metrics.increment("paused", subsystem="ignored")
                return Action.IGNORE

            values = self._accept(sample)
            if values is None:
                self.metrics.increment("malformed", subsystem="ignored")
                return Action.IGNORE

            if self.collect_phase == CollectPhase.AFTER:
                self.s_next_buffer.append(values)
                return None

            self.s_buffer.append(values)
            if self.waiting_feedback or len(self.s_buffer) < self.config.min_samples:
                return None

            state = self._build_state(self.s_buffer)
            if state is None:
                return None

            self._update_gaze_info()
            action = self.predict(state)
            self.wait_for_user_reaction()
            return action

    def _accept(self, sample: Any) -> Optional[List[Any]]:
        """Validate a sample against the session's feature names."""
        if not isinstance(sample, Mapping) or not sample:
            logger.debug("Ignoring empty or non-mapping sample")
            return None

        labels = list(sample.keys())
        if self.feature_names is None:
            self.feature_names = labels
        elif set(labels) != set(self.feature_names):
            logger.warning(
                f"Ignoring sample with mismatched features: "
                f"expected {sorted(map(str, self.feature_names))}, got {sorted(map(str, labels))}"
            )
            return None

        return [sample[name] for name in self.feature_names]

    def _build_state(self, buffer: Sequence[Sequence[Any]]) -> Optional[List[float]]:
        """Aggregate a buffer and run it through the preprocessor."""
        aggregated = aggregate_states(list(buffer))
        if not aggregated or self.feature_names is None:
            return None
        labeled = dict(zip(self.feature_names, aggregated))
        try:
            state = self.preprocess(labeled)
        except Exception as e:
            logger.error(f"Preprocessing failed: {e}")
            self.metrics.record_error("preprocess", type(e).__name__)
            return None
        return list(state) if state is not None else None

    def _update_gaze_info(self) -> None:
        try:
            self.gaze_info = self.gaze_extractor(self.feature_names or [], list(self.s_buffer))
        except Exception as e:
            logger.error(f"Gaze extraction failed: {e}")
            self.metrics.record_error("gaze", type(e).__name__)
            self.gaze_info = []

    def predict(self, state: Sequence[float]) -> Action:
        """
        Choose an action for ``state`` and update the mood estimate.

        Args:
            state: Preprocessed feature vector

        Returns:
            One of NOP, ASK_USER, SHOW_HELP
        """
        with self._lock:
            self.t_current += 1
            self.s_curr = list(state)

            action = self.policy.select(self.s_curr, self.eps, self.t_current)
            self.user_status = estimate_mood(action, self.user_status)
            self.last_action = action

            event(logger, "prediction", f"Predicted {action.value}",
                  session_id=self.session_id, timestep=self.t_current,
                  action=action.value, eps=round(self.eps, 4), mood=self.user_status.value,
                  explored=self.policy.explored)
            self.metrics.increment(action.value, subsystem="predictions")
            if self.policy.explored:
                self.metrics.increment("explored", subsystem="predictions")

            self.eps *= self.config.exploration_decay
            return action

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def wait_for_user_reaction(self) -> None:
        """Start collecting the post-action state and wait for feedback."""
        with self._lock:
            self._start_collecting_next_state(awaiting=True)
            logger.debug("Collecting next state (waiting for user's reaction)")
            self.waits.arm(
                WAIT_FEEDBACK,
                self.config.idle_timeout,
                self._on_idle,
                still_waiting=lambda: self.waiting_feedback,
                hold=lambda: self.is_paused,
            )

    def _on_idle(self) -> None:
        logger.info("User idle. Inferring feedback from last action.")
        self.set_feedback_automatically()

    def wait_to_estimate_feedback(self) -> None:
        """
        A help tool was triggered: estimate feedback from how long it stays open.

        Cancelling within the idle window means the help was not needed
        ("ok"); leaving it open past the window means it was ("help").
        """
        with self._lock:
            if self.last_action is None or not self.waiting_feedback:
                logger.debug("Help triggered but no step awaiting feedback")
                return
            self.user_action = Feedback.OK
            self.waits.cancel(WAIT_FEEDBACK)
            self.waits.arm(
                WAIT_ESTIMATE,
                self.config.idle_timeout,
                self._on_help_kept_open,
                still_waiting=lambda: self.waiting_feedback,
                hold=lambda: self.is_paused,
            )

    def _on_help_kept_open(self) -> None:
        logger.info("Help was not cancelled in time; it was needed.")
        self.user_action = Feedback.HELP
        self.metrics.increment("estimated", subsystem="feedback")
        self._set_human_feedback(Feedback.HELP)
        self.update_model()

    def report_user_action(self, kind: Any) -> None:
        """Record what the user did on their own (e.g. opened help)."""
        with self._lock:
            self.user_action = Feedback.parse(kind)

    def set_feedback_automatically(self) -> None:
        """Infer feedback from the last action after the user stayed idle."""
        with self._lock:
            if self.last_action is None:
                self._self_heal("no_action_on_idle")
                return
            if self.last_action == Action.SHOW_HELP:
                feedback = Feedback.HELP
            else:
                feedback = Feedback.OK
            self.metrics.increment("inferred", subsystem="feedback")
            self._set_human_feedback(feedback)
            self.update_model()

    def set_feedback(self, kind: Any) -> bool:
        """
        Explicit feedback from the user.

        Args:
            kind: "help" (help was needed) or "ok" (it was not)

        Returns:
            True if the feedback closed a step

        Raises:
            ValueError: if ``kind`` is not a known feedback kind
        """
        feedback = Feedback.parse(kind)
        with self._lock:
            if not self.is_active:
                logger.debug("Feedback ignored because reasoner disabled.")
                return False
            if self.last_action is None:
                self._self_heal("feedback_without_action")
                return False
            if not self.waiting_feedback:
                logger.info("Feedback received but reasoner not waiting anymore")
                return False
            self.metrics.increment("explicit", subsystem="feedback")
            self._set_human_feedback(feedback)
            return self.update_model()

    def set_help_canceled(self) -> bool:
        """The user closed a help tool."""
        with self._lock:
            if self.last_action is None:
                self._self_heal("help_canceled_without_action")
                return False
            if self.waiting_feedback:
                if self.user_action == Feedback.HELP:
                    logger.info("User canceled own help request")
                    self._set_human_feedback(Feedback.HELP)
                else:
                    logger.info("User canceled automatic help")
                    self._set_human_feedback(Feedback.OK)
                self.metrics.increment("help_canceled", subsystem="feedback")
            elif self.waits.is_pending(WAIT_NEXT_STATE):
                logger.debug("Help canceled while collecting S_next; update already scheduled")
                return False
            return self.update_model()

    def set_help_done(self) -> bool:
        """A long-running help tool finished presenting its results."""
        with self._lock:
            if self.last_action is None:
                self._self_heal("help_done_without_action")
                return False
            if not self.waiting_feedback:
                logger.info("Help done but reasoner not waiting anymore")
                return False
            self.metrics.increment("help_done", subsystem="feedback")
            self._set_human_feedback(Feedback.HELP)
            return self.update_model()

    def _set_human_feedback(self, feedback: Feedback) -> None:
        """Compute the reward against the mood estimated at prediction time."""
        self.waiting_feedback = False
        self.waits.cancel(WAIT_FEEDBACK)
        self.waits.cancel(WAIT_ESTIMATE)

        mood = feedback.to_mood()
        self.reward = self.reward_evaluator.evaluate(mood, self.user_status)
        self.stored_feedback = feedback
        self.user_status = mood
        self.metrics.record_reward(self.reward)
        event(logger, "feedback", f"Got feedback {feedback.value}. Setting reward to {self.reward}",
              session_id=self.session_id, timestep=self.t_current,
              feedback=feedback.value, reward=self.reward)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def update_model(self) -> bool:
        """
        Apply the TD update for (s, a, r, s') and start a new step.

        Collects s' first if no post-action sample arrived yet.

        Returns:
            True if the step was closed
        """
        with self._lock:
            if self.last_action is None:
                self._self_heal("update_without_action")
                return False

            if not self.s_next_buffer:
                if self._next_state_retried:
                    self._self_heal("next_state_missing")
                    return False
                logger.info("Trying to update model without having collected S_next. Collecting S_next now.")
                self._collect_next_state_and_update()
                return False

            s_next = self._build_state(self.s_next_buffer)
            if s_next is None or self.s_curr is None:
                self._self_heal("next_state_unprocessable")
                return False
            self.s_next = s_next

            if self.table_a is not None:
                result = self._td_update()
                event(logger, "update", f"Updated Q model {result.table} (delta={result.delta:.4f})",
                      level=logging.DEBUG, session_id=self.session_id, timestep=self.t_current,
                      table=result.table, target=result.target, delta=result.delta,
                      action=self.last_action.value, reward=self.reward)
                self.metrics.increment(result.table, subsystem="updates")

            self._finish_step()
            return True

    def _td_update(self) -> TDResult:
        cfg = self.config
        if self.table_b is not None:
            return double_q_update(
                self.table_a, self.table_b,
                self.s_curr, self.last_action, self.reward, self.s_next,
                cfg.learning_rate, cfg.discount, rng=self.rng,
            )
        return q_update(
            self.table_a,
            self.s_curr, self.last_action, self.reward, self.s_next,
            cfg.learning_rate, cfg.discount,
        )

    def _finish_step(self) -> None:
        self.waits.cancel(WAIT_FEEDBACK)
        self.waits.cancel(WAIT_ESTIMATE)
        self.waits.cancel(WAIT_NEXT_STATE)
        self.last_action = None
        self.user_action = None
        self.collect_phase = CollectPhase.BEFORE
        self.waiting_feedback = False
        self._next_state_retried = False
        self.s_buffer.clear()
        self.s_next_buffer.clear()
        logger.debug("Collecting current state (S)")

        self.episode_step += 1
        if self.episode_step >= self.config.episode_length:
            self.episode_step = 0
            self.episode += 1
            self._episode_end()

    def _episode_end(self) -> None:
        event(logger, "episode_end", f"Episode {self.episode} ended",
              session_id=self.session_id, timestep=self.t_current)
        self.metrics.increment("episodes")
        if self.on_episode_end is None:
            return
        try:
            self.on_episode_end()
        except Exception as e:
            logger.error(f"Episode end callback failed: {e}")
            self.metrics.record_error("episode_end", type(e).__name__)

    def _start_collecting_next_state(self, awaiting: bool) -> None:
        self.collect_phase = CollectPhase.AFTER
        self.waiting_feedback = awaiting
        self.s_next_buffer.clear()

    def _collect_next_state_and_update(self) -> None:
        """We have S, A and R already: collect S' for a while, then update."""
        self._start_collecting_next_state(awaiting=False)
        self._next_state_retried = True
        self.waits.arm(
            WAIT_NEXT_STATE,
            self.config.next_state_timeout,
            self.update_model,
            still_waiting=lambda: self.last_action is not None,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Snapshot of the reasoner's session and learning state."""
        with self._lock:
            if not self.is_active:
                state = "disabled"
            elif self.is_paused:
                state = "paused"
            elif self.collect_phase == CollectPhase.AFTER:
                state = "awaiting-feedback" if self.waiting_feedback else "collecting-after"
            else:
                state = "collecting-before"
            return {
                "session_id": self.session_id,
                "state": state,
                "active": self.is_active,
                "paused": self.is_paused,
                "testing": self.testing,
                "model_type": self.config.model_type,
                "phase": self.collect_phase.value,
                "waiting_feedback": self.waiting_feedback,
                "last_action": self.last_action.value if self.last_action else None,
                "user_action": self.user_action.value if self.user_action else None,
                "user_status": self.user_status.value,
                "reward": self.reward,
                "eps": self.eps,
                "timestep": self.t_current,
                "episode": self.episode,
                "episode_step": self.episode_step,
                "buffer": len(self.s_buffer),
                "next_buffer": len(self.s_next_buffer),
                "table_a": self.table_a.get_statistics() if self.table_a is not None else None,
                "table_b": self.table_b.get_statistics() if self.table_b is not None else None,
            }
