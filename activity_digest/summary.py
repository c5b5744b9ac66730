"""Turns collected activity into a written digest via an LLM."""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from activity_digest.llm.base import BaseLLM
from activity_digest.models import RunActivity

logger = logging.getLogger("activity_digest.summary")

DEFAULT_PROMPT_TEMPLATE = """You are a technical writer creating a weekly development summary for a software organization.
Analyze the following repository activity data and create a clear and informative summary.

**IMPORTANT - PLAIN TEXT FORMAT (NO MARKDOWN):**
The output will be shared across multiple platforms (Slack, WhatsApp, email).
- DO NOT use any formatting: no *, _, #, ##, **, bold, italics, etc.
- DO NOT use bullet points like • or -
- Use only plain text and emojis
- Separate sections with blank lines
- Use UPPERCASE for emphasis if needed

**Content Guidelines:**
- Organize the summary BY REPOSITORY
- For each repository, summarize what was delivered or changed in short sentences
- Use emojis to visually separate sections
- Be specific about features, fixes, and improvements
- Write everything in {language}

**Repository Activity Data ({period_start} to {period_end}):**
{activity_data}

**Output Format (PLAIN TEXT):**

📊 WEEKLY SUMMARY
{period_start} to {period_end}

[One or two sentences summarizing the week's highlights]

📦 repository-name
[X files changed, +Y/-Z lines]
Description of what was delivered in one or two sentences.

📦 another-repository
[X files changed, +Y/-Z lines]
Description of changes.

[Repeat for each repository]

Automatically generated from {active_repos} active repositories.

**END OF FORMAT**

Keep descriptions informative but concise. Highlight business value when possible."""


def no_activity_text(period_start: str, period_end: str) -> str:
    return (
        f"📊 Weekly Summary - {period_start} to {period_end}\n\n"
        f"No repository activity during this period."
    )


def build_activity_payload(activities: RunActivity) -> list[dict]:
    """Reduce collected activity to what the model needs to see.

    Inactive repositories are dropped. Commit messages are cut to their
    first line and direct commits are identified by their short sha.

    Args:
        activities: Activity keyed by repository full name.

    Returns:
        One dictionary per active repository, in input order.
    """
    payload = []
    for repo_name, activity in activities.items():
        if not activity.is_active:
            continue
        payload.append({
            "repository": repo_name,
            "stats": activity.total_stats.model_dump(),
            "merged_prs": [
                {
                    "title": pr.title,
                    "description": pr.body,
                    "stats": pr.stats.model_dump(),
                    "original_commits": [c.first_line for c in pr.commits],
                }
                for pr in activity.merged_prs
            ],
            "direct_commits": [
                {"sha": c.short_sha, "message": c.first_line, "stats": c.stats.model_dump()}
                for c in activity.direct_commits
            ],
        })
    return payload


def load_prompt_template(template_path: Optional[Union[str, Path]]) -> str:
    """Read a custom prompt template, falling back to the built-in one."""
    if not template_path:
        return DEFAULT_PROMPT_TEMPLATE
    path = Path(template_path)
    if not path.is_file():
        logger.warning(f"Prompt template not found at {path}, using default")
        return DEFAULT_PROMPT_TEMPLATE
    return path.read_text(encoding="utf-8")


def render_prompt(
    template: str,
    payload: list[dict],
    period_start: str,
    period_end: str,
    language: str,
) -> str:
    """Fill every placeholder occurrence in the template.

    str.replace is used instead of str.format so that literal braces in a
    user template are left alone.
    """
    values = {
        "{language}": language or "English",
        "{period_start}": period_start,
        "{period_end}": period_end,
        "{activity_data}": json.dumps(payload, indent=2, ensure_ascii=False),
        "{active_repos}": str(len(payload)),
    }
    prompt = template
    for placeholder, value in values.items():
        prompt = prompt.replace(placeholder, value)
    return prompt


def generate_summary(
    llm: BaseLLM,
    activities: RunActivity,
    period_start: str,
    period_end: str,
    language: str = "English",
    template_path: Optional[Union[str, Path]] = None,
) -> str:
    """Generate the digest text for a run.

    Args:
        llm: LLM provider used to write the summary.
        activities: Activity keyed by repository full name.
        period_start: Start of the period (YYYY-MM-DD).
        period_end: End of the period (YYYY-MM-DD).
        language: Language the summary is written in.
        template_path: Optional custom prompt template file.

    Returns:
        The summary text.

    Raises:
        RuntimeError: If the model returns no content.
    """
    payload = build_activity_payload(activities)
    if not payload:
        return no_activity_text(period_start, period_end)

    template = load_prompt_template(template_path)
    prompt = render_prompt(template, payload, period_start, period_end, language)

    logger.info(f"Generating AI summary with {llm.provider_name}...")
    response = llm.generate(prompt)

    if not response.success:
        raise RuntimeError(f"{llm.provider_name} returned an empty summary")

    if response.tokens_used:
        logger.debug(f"Summary used {response.tokens_used} tokens")
    return response.content
