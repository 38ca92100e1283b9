"""Short repository summaries generated with an LLM"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import logging

from openai import AsyncOpenAI

from dashboard.config.settings import Settings
from dashboard.models.entities import Repository
from dashboard.storage.repositories import KnowledgeRepository

logger = logging.getLogger(__name__)

LLMCall = Callable[[str], Awaitable[Optional[str]]]


class RepoSummarizer:
    """Fills in summaries for repositories that have no description"""

    def __init__(
        self,
        settings: Settings,
        knowledge_repo: KnowledgeRepository,
        *,
        llm_call: Optional[LLMCall] = None,
    ):
        self.settings = settings
        self.knowledge_repo = knowledge_repo
        self.batch_size = max(settings.SUMMARY_BATCH_SIZE, 0)
        self._llm_call = llm_call
        self._openai_client: Optional[AsyncOpenAI] = None

        if llm_call is None and settings.OPENAI_API_KEY:
            self._openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
            self._llm_call = self._summarize_openai

    @property
    def enabled(self) -> bool:
        return self._llm_call is not None

    def select_candidates(self, repos: Sequence[Repository]) -> List[Repository]:
        """Repositories with an empty description and no stored summary, capped per run"""
        knowledge = self.knowledge_repo.all()
        candidates = []
        for repo in repos:
            if repo.description.strip():
                continue
            if (knowledge.get(repo.full_name) or {}).get("summary"):
                continue
            candidates.append(repo)
            if len(candidates) >= self.batch_size:
                break
        return candidates

    async def summarize_missing(self, repos: Sequence[Repository]) -> Dict[str, Any]:
        if not self.enabled:
            logger.warning("OPENAI_API_KEY is not set, skipping repository summaries")
            return {"processed": 0, "results": []}

        results = []
        for repo in self.select_candidates(repos):
            summary = await self.summarize(repo)
            if not summary:
                continue
            self.knowledge_repo.upsert(repo.full_name, summary=summary)
            results.append({"name": repo.full_name, "summary": summary})

        logger.info(f"Generated {len(results)} repository summaries")
        return {"processed": len(results), "results": results}

    async def summarize(self, repo: Repository) -> Optional[str]:
        """Return a one or two sentence summary, or None if generation failed"""
        prompt = self._build_prompt(repo)
        try:
            summary = await self._llm_call(prompt)
        except Exception as e:
            logger.error(f"Failed to summarize {repo.full_name}: {e}")
            # Skip this repo; the next run will pick it up again
            return None
        return summary.strip() if summary else None

    async def _summarize_openai(self, prompt: str) -> Optional[str]:
        response = await self._openai_client.chat.completions.create(
            model=self.settings.SUMMARY_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You are an expert developer who writes concise repository summaries."
                },
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            temperature=0.3,
            max_tokens=200
        )
        return response.choices[0].message.content

    def _build_prompt(self, repo: Repository) -> str:
        return f"""Summarize the GitHub repository "{repo.full_name}" in 1-2 sentences.
Base the summary on the metadata below.

Language: {repo.language}
Stars: {repo.stars}
Visibility: {repo.visibility}

Output ONLY the summary text."""
