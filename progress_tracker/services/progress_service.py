"""
Progress Service for the Progress Tracker
Handles stars, lesson watermark, topic and quiz completion tracking
"""

import copy
import logging
import re
import time

from progress_tracker.config import DEFAULT_CACHE_TTL_MS
from progress_tracker.services.record_store import AbortTransaction, user_path, validate_key
from progress_tracker.utils.error_handler import (
    ProgressTrackerError,
    ValidationError,
    error_result,
)

logger = logging.getLogger(__name__)

TOPICS_PER_LESSON = 3


def now_ms():
    return int(time.time() * 1000)


def empty_snapshot():
    return {
        'stars': 0,
        'lessons': 0,
        'completed_topics': {},
        'completed_quizzes': {}
    }


def snapshot_from_record(record):
    """
    Progress fields of a stored user record; missing fields read as empty
    """
    record = record or {}
    return {
        'stars': record.get('stars') or 0,
        'lessons': record.get('lessons') or 0,
        'completed_topics': dict(record.get('completedTopics') or {}),
        'completed_quizzes': dict(record.get('completedQuizzes') or {})
    }


def lesson_topic_ids(lesson_num):
    return [f'l{lesson_num}topic{i}' for i in range(1, TOPICS_PER_LESSON + 1)]


def lesson_quiz_id(lesson_num):
    return f'quiz_l{lesson_num}'


def extract_lesson_number(topic_or_quiz_id):
    """
    First run of digits in the id: 'quiz_l3' -> 3, 'l2topic1' -> 2, no digits -> 0
    """
    match = re.search(r'\d+', topic_or_quiz_id)
    return int(match.group()) if match else 0


def is_lesson_complete(completed_topics, completed_quizzes, lesson_num):
    all_topics = all(completed_topics.get(t) for t in lesson_topic_ids(lesson_num))
    return bool(all_topics and completed_quizzes.get(lesson_quiz_id(lesson_num)))


def _validate_stars(stars_earned):
    if isinstance(stars_earned, bool) or not isinstance(stars_earned, int) or stars_earned < 0:
        raise ValidationError("stars_earned must be a non-negative integer", field='stars_earned')


class ProgressCache:
    """
    Short-lived per-user cache of progress snapshots.

    Entries younger than ttl_ms are served as fresh; older entries are kept
    as the fallback for failed reads until invalidated.
    """

    def __init__(self, ttl_ms=DEFAULT_CACHE_TTL_MS, clock=None):
        self.ttl_ms = ttl_ms
        self.clock = clock or now_ms
        self._entries = {}

    def get_fresh(self, uid):
        entry = self._entries.get(uid)
        if entry is None:
            return None
        stored_at, snapshot = entry
        if self.clock() - stored_at >= self.ttl_ms:
            return None
        return copy.deepcopy(snapshot)

    def get_last_known(self, uid):
        entry = self._entries.get(uid)
        return copy.deepcopy(entry[1]) if entry else None

    def put(self, uid, snapshot):
        self._entries[uid] = (self.clock(), copy.deepcopy(snapshot))

    def invalidate(self, uid):
        self._entries.pop(uid, None)


class ProgressService:
    def __init__(self, store, cache=None, clock=None):
        self.store = store
        self.clock = clock or now_ms
        self.cache = cache or ProgressCache(clock=self.clock)

    def get_progress(self, uid):
        """
        Current progress snapshot; never raises for backend failures
        """
        cached = self.cache.get_fresh(uid)
        if cached is not None:
            logger.debug(f"Using cached progress for {uid}")
            return cached

        try:
            record = self.store.read_record(user_path(uid))
        except ProgressTrackerError as e:
            logger.error(f"Error getting progress for {uid}: {e.message}")
            return self.cache.get_last_known(uid) or empty_snapshot()

        if record is None:
            logger.info(f"No progress found for {uid}, returning empty")
        snapshot = snapshot_from_record(record)
        self.cache.put(uid, snapshot)
        logger.debug(f"Progress fetched for {uid} - Stars: {snapshot['stars']}, Lessons: {snapshot['lessons']}")
        return snapshot

    def clear_cache(self, uid):
        self.cache.invalidate(uid)

    def complete_topic(self, uid, topic_id, stars_earned):
        """
        Mark a topic completed and award its stars, once per topic
        """
        outcome = {}

        def _complete(current):
            record = dict(current or {})
            topics = dict(record.get('completedTopics') or {})
            outcome['already_completed'] = topic_id in topics
            if outcome['already_completed']:
                raise AbortTransaction(current)

            topics[topic_id] = {
                'completed': True,
                'completedAt': self.clock(),
                'starsEarned': stars_earned
            }
            record['completedTopics'] = topics
            record['stars'] = (record.get('stars') or 0) + stars_earned
            record['lastUpdated'] = self.clock()
            return record

        try:
            validate_key(topic_id, 'topic_id')
            _validate_stars(stars_earned)
            record = self.store.apply(user_path(uid), _complete)
        except ProgressTrackerError as e:
            logger.error(f"Error completing topic {topic_id} for {uid}: {e.message}")
            return error_result(e)

        snapshot = snapshot_from_record(record)
        self.cache.put(uid, snapshot)

        if outcome['already_completed']:
            logger.warning(f"Topic {topic_id} already completed by {uid}, skipping")
        else:
            logger.info(f"Topic {topic_id} saved for {uid}, Stars: {snapshot['stars']}")
        return {
            'success': True,
            'total_stars': snapshot['stars'],
            'already_completed': outcome['already_completed']
        }

    def complete_quiz(self, uid, quiz_id, stars_earned, score):
        """
        Mark a quiz completed, award its stars and raise the lesson watermark
        when the quiz finishes its lesson
        """
        outcome = {}

        def _complete(current):
            record = dict(current or {})
            quizzes = dict(record.get('completedQuizzes') or {})
            outcome['already_completed'] = quiz_id in quizzes
            if outcome['already_completed']:
                raise AbortTransaction(current)

            quizzes[quiz_id] = {
                'completed': True,
                'completedAt': self.clock(),
                'starsEarned': stars_earned,
                'score': score
            }
            lessons = record.get('lessons') or 0
            lesson_num = extract_lesson_number(quiz_id)
            # Only checked here, a topic finished after the quiz does not raise the watermark
            if lesson_num and is_lesson_complete(record.get('completedTopics') or {}, quizzes, lesson_num):
                lessons = max(lessons, lesson_num)

            record['completedQuizzes'] = quizzes
            record['stars'] = (record.get('stars') or 0) + stars_earned
            record['lessons'] = lessons
            record['lastUpdated'] = self.clock()
            return record

        try:
            validate_key(quiz_id, 'quiz_id')
            _validate_stars(stars_earned)
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                raise ValidationError("score must be a number", field='score')
            record = self.store.apply(user_path(uid), _complete)
        except ProgressTrackerError as e:
            logger.error(f"Error completing quiz {quiz_id} for {uid}: {e.message}")
            return error_result(e)

        snapshot = snapshot_from_record(record)
        self.cache.put(uid, snapshot)

        if outcome['already_completed']:
            logger.warning(f"Quiz {quiz_id} already completed by {uid}, skipping")
        else:
            logger.info(f"Quiz {quiz_id} saved for {uid} (score {score}), "
                        f"Stars: {snapshot['stars']}, Lessons: {snapshot['lessons']}")
        return {
            'success': True,
            'total_stars': snapshot['stars'],
            'lessons_completed': snapshot['lessons'],
            'already_completed': outcome['already_completed']
        }

    def is_topic_completed(self, uid, topic_id):
        return bool(self.get_progress(uid)['completed_topics'].get(topic_id))

    def is_quiz_completed(self, uid, quiz_id):
        return bool(self.get_progress(uid)['completed_quizzes'].get(quiz_id))

    def get_lesson_status(self, uid, lesson_num):
        progress = self.get_progress(uid)
        topics_completed = sum(
            1 for t in lesson_topic_ids(lesson_num) if progress['completed_topics'].get(t)
        )
        quiz_completed = bool(progress['completed_quizzes'].get(lesson_quiz_id(lesson_num)))

        return {
            'topics_completed': topics_completed,
            'topics_total': TOPICS_PER_LESSON,
            'quiz_completed': quiz_completed,
            'lesson_completed': topics_completed == TOPICS_PER_LESSON and quiz_completed
        }

    def get_current_progress(self, uid):
        progress = self.get_progress(uid)

        return {
            'total_stars': progress['stars'],
            'lessons_completed': progress['lessons'],
            'topics_completed': len(progress['completed_topics']),
            'quizzes_completed': len(progress['completed_quizzes'])
        }

    def reset_progress(self, uid):
        """
        Zero all progress for a user. Callers must restrict this to admins.
        """
        try:
            self.store.patch_fields(user_path(uid), {
                'stars': 0,
                'lessons': 0,
                'completedTopics': {},
                'completedQuizzes': {},
                'lastUpdated': self.clock()
            })
        except ProgressTrackerError as e:
            logger.error(f"Error resetting progress for {uid}: {e.message}")
            return error_result(e)

        self.cache.invalidate(uid)
        logger.info(f"Progress reset for user {uid}")
        return {'success': True}
