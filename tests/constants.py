"""Question payloads shared by the API tests."""

SINGLE_CHOICE = {
    "question_type": "single_choice",
    "question_text": "Which structure is LIFO?",
    "question_data": {"options": ["Queue", "Stack", "Heap"], "correct_option_index": 1},
    "points": 2,
}

MULTIPLE_CHOICE = {
    "question_type": "multiple_choice",
    "question_text": "Which sorts are stable?",
    "question_data": {"options": ["Merge", "Quick", "Insertion", "Heap"], "correct_option_indices": [0, 2]},
    "points": 4,
}

SHORT_ANSWER_MANUAL = {
    "question_type": "short_answer",
    "question_text": "Explain amortized analysis.",
    "question_data": {"max_length": 500},
    "points": 5,
}

NUMERICAL = {
    "question_type": "numerical",
    "question_text": "What is the speed of light in a vacuum?",
    "question_data": {"correct_answer": 299792458, "tolerance": 0.5, "units": "m/s"},
    "points": 3,
}
