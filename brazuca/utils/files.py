import math
from typing import List, Optional

from brazuca.utils.general import is_video, normalize
from brazuca.utils.models import ArchiveFile, MatchContext


def episode_tokens(episode: int, season: Optional[int] = None):
    """Ways a release can spell the requested episode, normalized like paths."""
    episode_padded = str(episode).zfill(2)

    tokens = [
        f"e{episode}",
        f"ep{episode}",
        f"episode{episode}",
        f"episodio{episode}",
        f"capitulo{episode}",
        f"part{episode}",
        f"e{episode_padded}",
        f"ep{episode_padded}",
        f"episode{episode_padded}",
        f"episodio{episode_padded}",
    ]

    if season is not None:
        season_padded = str(season).zfill(2)
        tokens.extend(
            [
                f"s{season}e{episode}",
                f"s{season}e{episode_padded}",
                f"s{season_padded}e{episode_padded}",
                f"s{season_padded}e{episode}",
                f"season{season}episode{episode}",
                f"season{season_padded}episode{episode_padded}",
                f"{season}x{episode}",
                f"{season}x{episode_padded}",
                f"{season_padded}x{episode_padded}",
            ]
        )

    return [token for token in (normalize(token) for token in tokens) if token]


def score_episode_match(path: str, context: MatchContext):
    if context.episode is None:
        return 0

    score = 0
    for token in episode_tokens(context.episode, context.season):
        if token in path:
            score += 10 if len(token) >= 4 else 6

    if context.episode_list and context.episode in context.episode_list:
        score += 2

    return score


def score_file(file: ArchiveFile, context: MatchContext):
    normalized_path = normalize(file.path)
    if not normalized_path:
        return 0

    score = 0

    if context.year and str(context.year) in normalized_path:
        score += 4

    title = normalize(context.title)
    if title and title in normalized_path:
        score += 6

    episode_title = normalize(context.episode_title)
    if episode_title and episode_title in normalized_path:
        score += 8

    score += score_episode_match(normalized_path, context)

    if score > 0:
        score += math.log10(file.bytes + 1)

    return score


def find_contextual_match(files: List[ArchiveFile], context: Optional[MatchContext]):
    if context is None:
        return None

    scored = [(score_file(file, context), file) for file in files]
    scored = [entry for entry in scored if entry[0] > 0]
    if not scored:
        return None

    scored.sort(key=lambda entry: (entry[0], entry[1].bytes), reverse=True)
    return scored[0][1]


def select_best_file(files: List[ArchiveFile], context: Optional[MatchContext] = None):
    if not files:
        return None

    video_files = [file for file in files if is_video(file.path)]
    if not video_files:
        return files[0]

    contextual_match = find_contextual_match(video_files, context)
    if contextual_match is not None:
        return contextual_match

    return max(video_files, key=lambda file: file.bytes)
