"""
Slot-level class recommendations and whole-schedule optimization suggestions.

The ranker always talks to a RecommendationProvider. The local heuristic is
deterministic and always available; the remote provider calls a chat-style
model endpoint and is only ever used through FallbackRecommendationProvider,
which maps every remote failure back to the local result.
"""
from dataclasses import dataclass, asdict
from typing import Optional
import json
import logging
import math
import re

import requests

from .entities import instructor_key
from .performance import (
    best_instructor_for_cell, class_average_for_slot, format_stats, instructor_specialties, location_average,
    unique_instructors
)
from .rules import (
    day_guidelines, format_allowed_at_location, is_hosted_class,
    WEEKLY_HOUR_LIMIT, NEW_INSTRUCTOR_WEEKLY_LIMIT
)
from .validation import compute_instructor_hours, overloaded_instructors

logger = logging.getLogger(__name__)

MAX_PRIORITY = 5
MAX_CONFIDENCE = 0.9
DEFAULT_TIMEOUT = 8


class RecommenderError(Exception):
    """Remote recommender failed: timeout, transport error, bad status or bad payload"""


@dataclass
class Recommendation:
    class_format: str
    instructor: str
    reasoning: str
    confidence: float
    expected_participants: float
    expected_revenue: float
    priority: int
    source: str = 'local'

    def to_dict(self):
        return asdict(self)


@dataclass
class OptimizationSuggestion:
    type: str
    class_id: str
    instructor: str
    hours: float
    reason: str
    impact: str
    priority: int
    suggested_instructor: Optional[str] = None
    source: str = 'local'

    def to_dict(self):
        return asdict(self)


def rank_priority(position):
    """Rank position 0, 1, 2... mapped onto 5, 4, 3... with a floor of 1"""
    return max(1, MAX_PRIORITY - position)


def rescale_priority(priority):
    """1-10 scale used by remote models mapped onto 1-5"""
    try:
        value = float(priority)
    except (TypeError, ValueError):
        value = 5.0
    return max(1, min(MAX_PRIORITY, int(math.ceil(value / 2))))


# =============================================================
# ======================== Local heuristic ====================
# =============================================================

class RecommendationProvider:
    name = 'base'

    def recommend(self, records, day, time, location, limit=5):
        raise NotImplementedError

    def suggest(self, schedule, records=None, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
        raise NotImplementedError


class LocalHeuristicProvider(RecommendationProvider):
    """Exact cell, then location, then everything; ranked by historic average"""
    name = 'local'

    def _usable(self, records, location):
        return [
            r for r in records
            if not is_hosted_class(r.class_format) and format_allowed_at_location(r.class_format, location)
        ]

    def recommend(self, records, day, time, location, limit=5):
        usable = self._usable(records, location)
        cell = [r for r in usable if r.location == location and r.day == day and r.time == time]

        at_location = [r for r in usable if r.location == location]

        if cell:
            subset, scope = cell, 'this exact slot'
        elif at_location:
            subset, scope = at_location, location
        else:
            subset, scope = usable, 'all locations'

        stats = format_stats(subset)
        guidelines = day_guidelines(day)
        if not cell:
            # Outside the exact cell the day guidelines steer the ranking
            stats = {f: s for f, s in stats.items() if f not in guidelines.avoid}

        ranked = sorted(
            stats.items(),
            key=lambda item: (
                bool(cell) or item[0] not in guidelines.priority,
                -item[1]['avg_participants'],
                -item[1]['frequency'],
            )
        )

        recommendations = []
        for position, (class_format, summary) in enumerate(ranked[:limit]):
            instructor = None
            if cell:
                instructor = best_instructor_for_cell(records, class_format, location, day, time)
            recommendations.append(Recommendation(
                class_format=class_format,
                instructor=instructor or 'Best Available',
                reasoning=(f"{summary['avg_participants']:.1f} average participants over "
                           f"{summary['frequency']} classes in {scope}"),
                confidence=min(MAX_CONFIDENCE, summary['frequency'] / 10),
                expected_participants=round(summary['avg_participants'], 1),
                expected_revenue=round(summary['avg_revenue'], 1),
                priority=rank_priority(position),
            ))
        return recommendations

    def suggest(self, schedule, records=None, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
        """One redistribution suggestion per instructor above their weekly cap"""
        suggestions = []
        for name, hours, cap in overloaded_instructors(schedule, instructors, weekly_limit, new_weekly_limit):
            classes = [cls for cls in schedule if cls.instructor_key == instructor_key(name) and not cls.is_locked]
            if not classes:
                continue
            suggestions.append(OptimizationSuggestion(
                type='teacher_change',
                class_id=classes[0].id,
                instructor=name,
                hours=hours,
                reason=f"{name} is overloaded with {hours:g} hours (limit {cap:g}). Consider redistributing classes.",
                impact='Better work-life balance and reduced instructor fatigue',
                priority=4,
            ))
        return suggestions


# =============================================================
# ======================== Remote provider ====================
# =============================================================

PROVIDER_DEFAULTS = {
    'openai': ('https://api.openai.com/v1/chat/completions', 'gpt-4'),
    'anthropic': ('https://api.anthropic.com/v1/messages', 'claude-3-sonnet-20240229'),
    'deepseek': ('https://api.deepseek.com/v1/chat/completions', 'deepseek-chat'),
    'groq': ('https://api.groq.com/openai/v1/chat/completions', 'mixtral-8x7b-32768'),
}

JSON_BLOCK = re.compile(r'\{.*\}', re.DOTALL)

RULES_TEXT = (
    "Rules: no regular classes between 12:00 and 17:00; Supreme HQ, Bandra runs no HIIT or Amped Up; "
    "other studios run no PowerCycle; instructors teach at most 15 hours a week and 4 hours a day "
    "with two days off; never repeat a format in the same slot."
)


class RemoteRecommendationProvider(RecommendationProvider):
    """Chat-completion endpoint (OpenAI, Anthropic, DeepSeek or Groq) asked for JSON recommendations"""
    name = 'remote'

    def __init__(self, provider, api_key, endpoint=None, model=None, timeout=DEFAULT_TIMEOUT):
        provider = (provider or '').lower()
        if provider not in PROVIDER_DEFAULTS:
            raise ValueError(f"Unsupported recommendation provider: {provider!r}")
        default_endpoint, default_model = PROVIDER_DEFAULTS[provider]
        self.provider = provider
        self.api_key = api_key
        self.endpoint = endpoint or default_endpoint
        self.model = model or default_model
        self.timeout = timeout

    def build_prompt(self, records, day, time, location):
        cell = [r for r in records if r.location == location and r.day == day and r.time == time]
        guidelines = day_guidelines(day)
        lines = [
            f"You are a fitness studio scheduling assistant. Recommend classes for {location} on {day} at {time}.",
            RULES_TEXT,
            f"{day} focus: {guidelines.focus}. Studio average: {location_average(records, location):.1f} participants.",
            "Historic performance for this slot:",
        ]
        for class_format, summary in format_stats(cell).items():
            lines.append(
                f"- {class_format}: {summary['avg_participants']:.1f} avg participants, "
                f"{summary['avg_revenue']:.0f} avg revenue, {summary['frequency']} classes"
            )
        lines.append(f"Preferred formats on {day}:")
        for class_format in guidelines.priority:
            average = class_average_for_slot(records, class_format, location, day, time)
            lines.append(f"- {class_format}: {average:.1f} avg participants in this slot")
        lines.append(
            'Answer with JSON only: {"recommendations": [{"classFormat": "", "teacher": "", "reasoning": "", '
            '"confidence": 0.8, "expectedParticipants": 10, "expectedRevenue": 5000, "priority": 9}]}'
        )
        return '\n'.join(lines)

    def build_optimization_prompt(self, schedule, records):
        lines = [
            "You are a fitness studio scheduling assistant. Suggest improvements to this weekly schedule.",
            RULES_TEXT,
            "Current schedule (id | day time - class with instructor at studio):",
        ]
        for cls in schedule:
            lines.append(f"{cls.id} | {cls.day} {cls.time} - {cls.class_format} with {cls.instructor_name} at {cls.location}")

        specialties = instructor_specialties(records, limit=3)
        if specialties:
            lines.append("Instructor specialties from history:")
            for name in unique_instructors(records):
                lines.append(f"- {name}: {', '.join(specialties.get(name, []))}")
        lines.append(
            'Answer with JSON only: {"suggestions": [{"type": "teacher_change", '
            '"originalClass": {"id": "", "teacher": ""}, "suggestedClass": {"teacher": ""}, '
            '"reason": "", "impact": "", "priority": 8}]}'
        )
        return '\n'.join(lines)

    def _request(self, prompt):
        headers = {'Content-Type': 'application/json'}
        body = {'model': self.model, 'messages': [{'role': 'user', 'content': prompt}], 'max_tokens': 3000}
        if self.provider == 'anthropic':
            headers['x-api-key'] = self.api_key
            headers['anthropic-version'] = '2023-06-01'
        else:
            headers['Authorization'] = f"Bearer {self.api_key}"
            body['temperature'] = 0.7

        try:
            response = requests.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise RecommenderError(f"{self.provider} request failed: {e}") from e

        if response.status_code != 200:
            raise RecommenderError(f"{self.provider} returned HTTP {response.status_code}")

        try:
            data = response.json()
            if self.provider == 'anthropic':
                return data['content'][0]['text']
            return data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RecommenderError(f"Unexpected {self.provider} response shape") from e

    def _payload_items(self, content, key):
        match = JSON_BLOCK.search(content or '')
        if not match:
            raise RecommenderError("Response contained no JSON object")
        try:
            items = json.loads(match.group(0))[key]
        except (ValueError, KeyError, TypeError) as e:
            raise RecommenderError(f"Response JSON has no {key} list") from e
        if not isinstance(items, list) or not items:
            raise RecommenderError(f"Response {key} list is empty")
        return items

    def parse(self, content):
        recommendations = []
        try:
            for item in self._payload_items(content, 'recommendations'):
                recommendations.append(Recommendation(
                    class_format=str(item['classFormat']),
                    instructor=str(item.get('teacher') or 'Best Available'),
                    reasoning=str(item.get('reasoning', '')),
                    confidence=max(0.0, min(1.0, float(item.get('confidence', 0.5)))),
                    expected_participants=float(item.get('expectedParticipants', 0)),
                    expected_revenue=float(item.get('expectedRevenue', 0)),
                    priority=rescale_priority(item.get('priority', 5)),
                    source='remote',
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecommenderError("Malformed recommendation entry") from e
        return recommendations

    def parse_suggestions(self, content, schedule):
        """Suggestions must point at a class of the schedule that was sent"""
        by_id = {cls.id: cls for cls in schedule}
        hours = {instructor_key(name): total for name, total in compute_instructor_hours(schedule).items()}

        suggestions = []
        try:
            for item in self._payload_items(content, 'suggestions'):
                original = item.get('originalClass') or {}
                cls = by_id.get(str(original.get('id', '')))
                if cls is None:
                    raise RecommenderError(f"Suggestion refers to unknown class {original.get('id')!r}")
                suggested = (item.get('suggestedClass') or {}).get('teacher')
                suggestions.append(OptimizationSuggestion(
                    type=str(item.get('type') or 'teacher_change'),
                    class_id=cls.id,
                    instructor=cls.instructor_name,
                    hours=hours.get(cls.instructor_key, 0.0),
                    reason=str(item.get('reason', '')),
                    impact=str(item.get('impact', '')),
                    priority=rescale_priority(item.get('priority', 5)),
                    suggested_instructor=str(suggested) if suggested else None,
                    source='remote',
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecommenderError("Malformed suggestion entry") from e
        return suggestions

    def recommend(self, records, day, time, location, limit=5):
        if not self.api_key:
            raise RecommenderError("No API key configured")
        if not any(r.location == location and r.day == day and r.time == time for r in records):
            raise RecommenderError("No historic data for this slot")

        content = self._request(self.build_prompt(records, day, time, location))
        return self.parse(content)[:limit]

    def suggest(self, schedule, records=None, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
        if not self.api_key:
            raise RecommenderError("No API key configured")
        if not schedule:
            raise RecommenderError("Nothing scheduled to optimize")

        content = self._request(self.build_optimization_prompt(schedule, records or []))
        return self.parse_suggestions(content, schedule)


class FallbackRecommendationProvider(RecommendationProvider):
    """Try the primary provider; on RecommenderError answer with the fallback"""
    name = 'fallback'

    def __init__(self, primary, fallback=None):
        self.primary = primary
        self.fallback = fallback or LocalHeuristicProvider()

    def recommend(self, records, day, time, location, limit=5):
        try:
            return self.primary.recommend(records, day, time, location, limit)
        except RecommenderError as e:
            logger.warning("Recommendation provider %s failed, using local heuristic: %s", self.primary.name, e)
            return self.fallback.recommend(records, day, time, location, limit)

    def suggest(self, schedule, records=None, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
        try:
            return self.primary.suggest(schedule, records, instructors, weekly_limit, new_weekly_limit)
        except RecommenderError as e:
            logger.warning("Optimization provider %s failed, using local suggestions: %s", self.primary.name, e)
            return self.fallback.suggest(schedule, records, instructors, weekly_limit, new_weekly_limit)


def build_provider(provider=None, api_key=None, endpoint=None, timeout=DEFAULT_TIMEOUT):
    """Local heuristic unless a remote provider and key are configured"""
    if not provider or not api_key:
        return LocalHeuristicProvider()
    return FallbackRecommendationProvider(
        RemoteRecommendationProvider(provider, api_key, endpoint=endpoint, timeout=timeout)
    )


# =============================================================
# ============================ Ranker =========================
# =============================================================

class RecommendationRanker:

    def __init__(self, provider=None):
        self.provider = provider or LocalHeuristicProvider()

    def rank(self, records, day, time, location, limit=5):
        recommendations = self.provider.recommend(records, day, time, location, limit)
        recommendations = sorted(recommendations, key=lambda rec: rec.priority, reverse=True)
        return recommendations[:limit]

    def suggest(self, schedule, records=None, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT, limit=3):
        suggestions = self.provider.suggest(schedule, records, instructors, weekly_limit, new_weekly_limit)
        suggestions = sorted(suggestions, key=lambda suggestion: suggestion.priority, reverse=True)
        return suggestions[:limit]


def get_recommendations(records, day, time, location, provider=None, limit=5):
    return RecommendationRanker(provider).rank(records, day, time, location, limit)


def suggest_optimizations(schedule, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                          new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT, limit=3, records=None, provider=None):
    """Schedule improvements from the provider, best first; at most `limit` suggestions"""
    return RecommendationRanker(provider).suggest(
        schedule, records, instructors, weekly_limit, new_weekly_limit, limit
    )
