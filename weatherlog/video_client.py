"""
YouTube Data API client.

Videos are a nice-to-have on an entry, so this client never raises:
any upstream problem is logged and an empty list comes back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging
import re

import httpx

logger = logging.getLogger("weatherlog.videos")

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def format_duration(iso_duration: Optional[str]) -> str:
    """'PT1H2M3S' -> '1:02:03', 'PT4M5S' -> '4:05'."""
    if not iso_duration:
        return "Unknown"
    match = DURATION_RE.fullmatch(iso_duration)
    if not match:
        return "Unknown"
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def _video_from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    snippet = item.get("snippet") or {}
    thumbs = snippet.get("thumbnails") or {}
    video_id = (item.get("id") or {}).get("videoId", "")
    description = snippet.get("description") or ""
    if len(description) > 200:
        description = description[:200] + "..."
    return {
        "title": snippet.get("title", ""),
        "videoId": video_id,
        "thumbnail": (thumbs.get("medium") or thumbs.get("default") or {}).get("url"),
        "channelTitle": snippet.get("channelTitle", ""),
        "publishedAt": snippet.get("publishedAt"),
        "description": description,
        "url": f"https://www.youtube.com/watch?v={video_id}",
    }


class YouTubeClient:
    """Search for travel/weather videos about a place."""

    def __init__(self, api_key: Optional[str], timeout_s: float = 10.0):
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.base = "https://www.googleapis.com/youtube/v3"

    async def search_videos(self, location: str, max_results: int = 5) -> List[Dict[str, Any]]:
        if not self.api_key:
            logger.warning("YouTube API key not configured; skipping video lookup")
            return []

        params = {
            "part": "snippet",
            "q": f"{location} travel guide weather tourism",
            "type": "video",
            "maxResults": max_results,
            "key": self.api_key,
            "order": "relevance",
            "safeSearch": "moderate",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.get(f"{self.base}/search", params=params)
        except httpx.HTTPError as e:
            logger.error("YouTube search failed for %r: %s", location, e)
            return []

        if r.status_code != 200:
            reasons = {
                400: "bad request",
                401: "invalid API key",
                403: "quota exceeded or access forbidden",
                404: "resource not found",
            }
            logger.error(
                "YouTube API error (%s, %s) for %r",
                r.status_code, reasons.get(r.status_code, "unexpected status"), location,
            )
            return []

        try:
            items = (r.json() or {}).get("items")
        except ValueError:
            logger.error("YouTube returned a non-JSON body for %r", location)
            return []
        if not items:
            logger.warning("No YouTube videos found for %r", location)
            return []

        videos = [_video_from_item(item) for item in items]
        logger.info("Found %d YouTube videos for %r", len(videos), location)
        return videos
