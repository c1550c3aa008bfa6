"""Claude API integration for syllabus-bound practice question generation."""

import json
import logging
import random
import re
import time
from typing import Dict, List, Optional

import anthropic

import config
from config import ExamConfig
from models import PracticeQuestion

logger = logging.getLogger(__name__)


class QuestionGenerationError(Exception):
    """Raised when question generation fails after retries."""


class QuestionGenerator:
    def __init__(self, client: Optional[anthropic.Anthropic] = None):
        self.client = client or anthropic.Anthropic(api_key=config.ANTHROPIC_API_KEY)
        self._last_request_time: float = 0

    def _rate_limit(self) -> None:
        elapsed = time.time() - self._last_request_time
        if elapsed < config.RATE_LIMIT_SECONDS:
            time.sleep(config.RATE_LIMIT_SECONDS - elapsed)
        self._last_request_time = time.time()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_questions(
        self,
        exam: ExamConfig,
        subject: str,
        count: int = 10,
        difficulty: str = "medium",
        topic: Optional[str] = None,
        topics: Optional[List[str]] = None,
    ) -> List[PracticeQuestion]:
        """Generate a batch of multiple-choice questions for one exam subject.

        Returns PracticeQuestion objects without database ids.
        Raises QuestionGenerationError if all retries fail or nothing usable
        comes back.
        """
        if difficulty == "mixed":
            difficulty = random.choice(("easy", "medium", "hard"))
        system_prompt = self._build_system_prompt(exam, subject, difficulty)
        user_prompt = self._build_user_prompt(exam, subject, count, difficulty, topic, topics)

        response_text = self._call_api(system_prompt, user_prompt)
        questions = self._parse_response(response_text, exam, subject, difficulty, topic)
        logger.info(
            "Generated %d %s questions for %s (%s)",
            len(questions), subject, exam.id, difficulty,
        )
        return questions

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def _syllabus_text(self, exam: ExamConfig, subject: str) -> str:
        entries = exam.syllabus.get(subject, ())
        lines = []
        for entry in entries:
            subs = ", ".join(entry.subtopics)
            lines.append(f"- {entry.name}: {subs}" if subs else f"- {entry.name}")
        return "\n".join(lines)

    def _build_system_prompt(self, exam: ExamConfig, subject: str, difficulty: str) -> str:
        rules = exam.scoring
        prompt = (
            f"You are a professional senior exam designer for the {exam.name}.\n"
            f"You MUST strictly follow the official {exam.name} syllabus for {subject}. "
            f"Never write questions outside it.\n\n"
            f"Requirements:\n"
            f"- Each question must have exactly 5 answer options (A through E)\n"
            f"- Only ONE correct option per question\n"
            f"- Mix conceptual, application and analytical questions\n"
            f"- Difficulty: {difficulty}\n"
            f"- Marking scheme: {rules.correct:+g} for a correct answer, "
            f"{rules.incorrect:+g} for a wrong answer, {rules.skipped:+g} if left blank, "
            f"so distractors should punish guessing\n"
            f"- Return ONLY valid JSON, no other text\n"
        )
        syllabus = self._syllabus_text(exam, subject)
        if syllabus:
            prompt += f"\nSyllabus for {subject}:\n{syllabus}\n"
        prompt += (
            f"\nReturn JSON with this exact structure:\n"
            f'{{"questions": [{{"question": "question text", '
            f'"options": ["first", "second", "third", "fourth", "fifth"], '
            f'"correctIndex": 0, '
            f'"explanation": "Why the correct option is right", '
            f'"difficulty": "{difficulty}", '
            f'"topic": "syllabus topic name"}}]}}'
        )
        return prompt

    def _build_user_prompt(
        self,
        exam: ExamConfig,
        subject: str,
        count: int,
        difficulty: str,
        topic: Optional[str] = None,
        topics: Optional[List[str]] = None,
    ) -> str:
        if topics:
            focus = f"these sub-topics: {', '.join(topics)}"
        else:
            focus = f"the topic {topic or subject}"
        prompt = (
            f"Generate exactly {count} unique, exam-grade {difficulty} multiple-choice "
            f"questions on {focus} under the subject {subject}."
        )
        prompt += f"\nThey must be representative of the real {exam.name}."
        prompt += "\nEach question must be substantially different from the others."
        prompt += "\nReturn ONLY the JSON object, no markdown formatting or code blocks."
        return prompt

    # ------------------------------------------------------------------
    # API call with retries
    # ------------------------------------------------------------------

    def _call_api(self, system_prompt: str, user_prompt: str, max_tokens: int = 0) -> str:
        """Make API call with retry logic for transient errors."""
        if not max_tokens:
            max_tokens = config.MAX_TOKENS

        last_error = None
        for attempt in range(config.MAX_RETRIES):
            self._rate_limit()
            try:
                response = self.client.messages.create(
                    model=config.MODEL,
                    max_tokens=max_tokens,
                    system=system_prompt,
                    messages=[{"role": "user", "content": user_prompt}],
                )
                return response.content[0].text

            except (
                anthropic.RateLimitError,
                anthropic.APIConnectionError,
                anthropic.InternalServerError,
            ) as e:
                last_error = e
                wait = (2 ** attempt) * 2
                logger.warning(
                    "Generation attempt %d failed (%s), retrying in %ds",
                    attempt + 1, type(e).__name__, wait,
                )
                time.sleep(wait)
            except anthropic.AuthenticationError as e:
                raise QuestionGenerationError(
                    "Invalid API key. Check your ANTHROPIC_API_KEY in .env"
                ) from e
            except anthropic.BadRequestError as e:
                raise QuestionGenerationError(f"Bad request: {e}") from e

        raise QuestionGenerationError(
            f"Failed after {config.MAX_RETRIES} retries: {last_error}"
        )

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _parse_response(
        self,
        response_text: str,
        exam: ExamConfig,
        subject: str,
        difficulty: str,
        topic: Optional[str] = None,
    ) -> List[PracticeQuestion]:
        """Parse the model's JSON reply into PracticeQuestion objects."""
        text = response_text.strip()
        if text.startswith("```"):
            lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
            text = "\n".join(lines)

        # Tolerate prose around the object
        match = re.search(r"\{[\s\S]*\}", text)
        if match:
            text = match.group(0)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise QuestionGenerationError(f"Invalid JSON response: {e}\nResponse: {text[:500]}")

        questions_data = data.get("questions", []) if isinstance(data, dict) else []
        if not questions_data:
            raise QuestionGenerationError("No questions in response")

        questions = []
        for qd in questions_data:
            q = self._validate_and_create_question(qd, exam, subject, difficulty, topic)
            if q:
                questions.append(q)

        if not questions:
            raise QuestionGenerationError("No valid questions after parsing")

        return questions

    def _validate_and_create_question(
        self,
        qd: Dict,
        exam: ExamConfig,
        subject: str,
        difficulty: str,
        topic: Optional[str] = None,
    ) -> Optional[PracticeQuestion]:
        """Validate a single question dict and return a PracticeQuestion."""
        if not isinstance(qd, dict):
            return None
        text = str(qd.get("question") or "").strip()
        options = qd.get("options")
        correct = qd.get("correctIndex")

        if not text:
            return None
        if not isinstance(options, list) or len(options) < 4:
            return None
        if isinstance(correct, bool) or not isinstance(correct, int):
            return None
        if not 0 <= correct < len(options):
            return None

        return PracticeQuestion(
            exam_type=exam.id,
            subject=subject,
            topic=qd.get("topic") or topic or subject,
            difficulty=qd.get("difficulty") or difficulty,
            question_text=text,
            options=[str(o) for o in options],
            correct_index=correct,
            explanation=str(qd.get("explanation") or ""),
        )
