"""
Question bank collaborators: JSON file loading and quiz data validation.
"""
import json
import os
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence
from pathlib import Path

from .models import Question

DEFAULT_QUESTION_FILE = Path(__file__).parent / "data" / "quiz_data.json"


class QuestionBank(Protocol):
    """Anything that can supply the questions of a difficulty tier."""

    def get_questions(self, difficulty: str) -> List[Question]:
        ...


class InMemoryQuestionBank:
    """Question bank backed by a mapping of difficulty name to questions."""

    def __init__(self, tiers: Optional[Mapping[str, Sequence[Question]]] = None):
        self._tiers: Dict[str, List[Question]] = {
            str(name): list(questions) for name, questions in (tiers or {}).items()
        }

    def get_questions(self, difficulty: str) -> List[Question]:
        return list(self._tiers.get(str(difficulty), []))

    def get_difficulties(self) -> List[str]:
        return list(self._tiers.keys())


class DataManager:
    """Loads and validates the bundled question file, keyed by difficulty."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    def __init__(self, question_file: Optional[str] = None):
        """
        Initialize DataManager with the question file path.

        Args:
            question_file: Path to the JSON question file; the bundled
                quiz_data.json is used when omitted
        """
        self.question_file = Path(question_file) if question_file else DEFAULT_QUESTION_FILE
        self.loaded_tiers: Dict[str, List[Question]] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback

    def load_question_file(self) -> Dict[str, List[Question]]:
        """
        Load the question file with comprehensive error handling.

        A missing, unreadable or malformed file leaves the bank empty and
        records a load error; the engine then treats every tier as empty.

        Returns:
            Dictionary mapping difficulty names to lists of Question objects
        """
        self.loaded_tiers.clear()
        self.load_errors.clear()

        load_result = self._read_file_safely(self.question_file)
        if not load_result['success']:
            self.load_errors.append(f"{self.question_file.name}: {load_result['error']}")
            self.logger.error(f"Failed to load question file {self.question_file}: {load_result['error']}")
            return self.loaded_tiers

        tiers = self._extract_tiers(load_result['data'])
        if tiers is None:
            self.load_errors.append(f"{self.question_file.name}: Invalid quiz structure")
            return self.loaded_tiers

        for difficulty, records in tiers.items():
            self.loaded_tiers[difficulty] = self._parse_questions(difficulty, records)
            self.logger.info(
                f"Loaded {len(self.loaded_tiers[difficulty])} '{difficulty}' questions from {self.question_file.name}"
            )

        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_tiers

    def load_from_dict(self, data: Any) -> Dict[str, List[Question]]:
        """
        Load questions from already-parsed JSON data.

        Args:
            data: Mapping in the same shape as the question file

        Returns:
            Dictionary mapping difficulty names to lists of Question objects
        """
        self.loaded_tiers.clear()
        self.load_errors.clear()

        tiers = self._extract_tiers(data)
        if tiers is None:
            self.load_errors.append("Invalid quiz structure")
            return self.loaded_tiers

        for difficulty, records in tiers.items():
            self.loaded_tiers[difficulty] = self._parse_questions(difficulty, records)
        return self.loaded_tiers

    def _read_file_safely(self, file_path: Path) -> Dict[str, Any]:
        """
        Read and parse a JSON file.

        Returns:
            Dictionary with success status, parsed data and error message if applicable
        """
        try:
            if not file_path.exists():
                return {'success': False, 'error': "File not found"}

            if not os.access(file_path, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = file_path.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                }

            with open(file_path, 'r', encoding='utf-8') as f:
                return {'success': True, 'data': json.load(f)}

        except json.JSONDecodeError as e:
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except PermissionError:
            return {'success': False, 'error': "Permission denied"}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}

    def _extract_tiers(self, data: Any) -> Optional[Dict[str, list]]:
        """
        Find the difficulty mapping in parsed JSON data.

        Accepted shapes:
        {"easy": [...], "medium": [...]}
        {"questions": {"easy": [...], "medium": [...]}}

        Returns:
            Mapping of difficulty name to raw records, or None if the
            structure is not usable
        """
        if not isinstance(data, dict):
            self.logger.error("Quiz data must be a JSON object")
            return None

        if "questions" in data and isinstance(data["questions"], dict):
            data = data["questions"]

        tiers = {}
        for difficulty, records in data.items():
            if not isinstance(records, list):
                self.logger.error(f"Difficulty '{difficulty}' must map to an array")
                self.load_errors.append(f"Difficulty '{difficulty}' is not an array")
                continue
            tiers[str(difficulty)] = records
        return tiers

    def validate_question_record(self, record: Any) -> Optional[str]:
        """
        Validate a single question record.

        Expected structure:
        {
            "question": str,
            "options": [str, str, ...],   # at least 2
            "answer": str,
            "explanation": str            # Optional
        }

        Returns:
            None if the record is valid, otherwise a description of the problem
        """
        if not isinstance(record, dict):
            return "must be an object"

        for key in ("question", "answer"):
            if key not in record:
                return f"missing '{key}' field"
            if not isinstance(record[key], str):
                return f"'{key}' field must be a string"

        options = record.get("options")
        if not isinstance(options, list):
            return "'options' field must be an array"
        if len(options) < 2:
            return "'options' must contain at least 2 entries"
        if not all(isinstance(option, str) for option in options):
            return "'options' entries must be strings"

        explanation = record.get("explanation", "")
        if explanation is not None and not isinstance(explanation, str):
            return "'explanation' field must be a string"

        return None

    def _parse_questions(self, difficulty: str, records: list) -> List[Question]:
        """
        Parse raw records into Question objects, skipping invalid ones.

        A record whose answer is not among its options is kept: the
        engine scores it as a data-integrity fault instead.
        """
        questions = []

        for i, record in enumerate(records):
            problem = self.validate_question_record(record)
            if problem:
                message = f"{difficulty} question {i} {problem}"
                self.logger.error(message)
                self.load_errors.append(message)
                continue

            if record["answer"] not in record["options"]:
                self.logger.warning(f"{difficulty} question {i} answer is not among its options")

            questions.append(Question(
                text=record["question"],
                options=list(record["options"]),
                correct_option=record["answer"],
                explanation=record.get("explanation") or ""
            ))

        return questions

    def get_questions(self, difficulty: str) -> List[Question]:
        """
        Retrieve questions for a difficulty tier.

        Args:
            difficulty: Tier name

        Returns:
            List of Question objects; empty if the tier has no data
        """
        return list(self.loaded_tiers.get(str(difficulty), []))

    def get_difficulties(self) -> List[str]:
        """Get the tier names present in the loaded file."""
        return list(self.loaded_tiers.keys())

    def get_question_count(self, difficulty: str) -> int:
        """Get the number of questions in a tier, 0 if absent."""
        return len(self.loaded_tiers.get(str(difficulty), []))

    def get_total_question_count(self) -> int:
        return sum(len(questions) for questions in self.loaded_tiers.values())

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a comprehensive summary of the loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'question_file': str(self.question_file),
            'tiers': {name: len(questions) for name, questions in self.loaded_tiers.items()},
            'total_questions': self.get_total_question_count(),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors()
        }
