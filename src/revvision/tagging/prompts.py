"""Prompt templates and response schemas for the Gemini calls."""

from __future__ import annotations

TAGGING_PROMPT = """You are an expert in real estate video analysis and tagging.

Analyze the following video frame and generate descriptive tags for the video.
The tags should be in the format YYYYMMDD_<PrimarySubject>_<KeyAttributes>_<ShotStyle?>_<TopTagCluster>_<shortHash>.mp4
based on a real estate video catalog and what's visible in the frame.

Filename: {filename}

Respond only with the generated tags. Do not include any additional explanations or context.
"""

REFINEMENT_PROMPT = """You are an expert video tag refiner.

You are given the original tags for a video and feedback from a video editor.
Your goal is to refine the tags based on the feedback to improve search accuracy.

Original Tags: {original_tags}
User Feedback: {user_feedback}
"""

TAGS_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {"tags": {"type": "STRING", "description": "The generated tags for the video."}},
    "required": ["tags"],
}

REFINED_TAGS_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "refinedTags": {
            "type": "STRING",
            "description": "The refined tags for the video incorporating user feedback.",
        }
    },
    "required": ["refinedTags"],
}
