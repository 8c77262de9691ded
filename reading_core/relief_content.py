"""
Built-in content for the relief activities and the break menu.
"""
from __future__ import annotations
from typing import Optional

from reading_core.models import ActivityChoice, Emotion

QUIZ_ITEMS = [
    {
        "question": "What do you call a bear with no teeth?",
        "options": ["A gummy bear", "A soft bear", "A smooth bear", "A baby bear"],
        "answer": 0,
    },
    {
        "question": "Why did the scarecrow win an award?",
        "options": ["He was outstanding in his field", "He was made of straw", "He scared birds", "He was tall"],
        "answer": 0,
    },
    {
        "question": "What time is it when an elephant sits on your fence?",
        "options": ["Time to get a new fence", "Lunch time", "Play time", "Question time"],
        "answer": 0,
    },
    {
        "question": "How do you know if there's an elephant in your refrigerator?",
        "options": ["Footprints in the butter", "Door is open", "Light is on", "Food is gone"],
        "answer": 0,
    },
    {
        "question": "Why did the coffee file a police report?",
        "options": ["It got mugged!", "It was too hot", "It spilled", "It was cold"],
        "answer": 0,
    },
]

RIDDLES = [
    {"prompt": "I have cities but no houses. What am I?", "answer": "A map"},
    {"prompt": "I speak without a mouth and hear without ears. I have no body, "
               "but come alive with wind. What am I?", "answer": "An echo"},
    {"prompt": "What has a head and a tail but no body?", "answer": "A coin"},
    {"prompt": "What can travel around the world while staying in a corner?", "answer": "A stamp"},
]

MEMORY_SYMBOLS = ("🎨", "🎯", "🎭", "🎪", "🎸", "🎲")

ACTIVITY_CHOICES = [
    ActivityChoice(activity_id="quiz", title="Fun Quiz", description="Laugh at funny questions"),
    ActivityChoice(activity_id="riddle", title="Mind Teasers", description="Solve clever riddles"),
    ActivityChoice(activity_id="sequence_memory", title="Memory Game", description="Remember the sequence"),
    ActivityChoice(activity_id="reaction", title="Reaction Test", description="Test your reflexes"),
]

DEFAULT_ACTIVITY = "quiz"


def greeting_for(emotion: Optional[Emotion]) -> str:
    if emotion == Emotion.SAD:
        return "Feeling down? Let's brighten your mood!"
    if emotion == Emotion.ANGRY:
        return "Let's cool down with some fun!"
    if emotion == Emotion.NEUTRAL:
        return "Take a quick mental break!"
    return "Let's have some fun!"
