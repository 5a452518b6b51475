"""Parser for unified diff format using unidiff library."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from unidiff import PatchSet

from models import Finding


@dataclass
class DiffLineMapping:
    """Lines of one file that can receive an inline review comment."""
    filename: str
    # Maps line number (in new file) -> position in diff (1-based)
    line_to_position: dict[int, int] = field(default_factory=dict)
    valid_lines: set[int] = field(default_factory=set)


@dataclass(frozen=True)
class ChangedFile:
    """One entry of a change set."""
    filename: str
    status: str                           # added, deleted, modified, renamed
    additions: int                        # count of added lines
    deletions: int                        # count of deleted lines
    patch: str = ""                       # raw patch text
    added_lines: tuple[tuple[int, str], ...] = ()   # (line_num, content)


def parse_diff(diff_text: str) -> list[ChangedFile]:
    """
    Parse a unified diff into a change set.

    Args:
        diff_text: Raw unified diff string

    Returns:
        List of ChangedFile objects, one per file, in diff order
    """
    patch_set = PatchSet(diff_text)
    files = []

    for patched_file in patch_set:
        if patched_file.is_added_file:
            status = "added"
        elif patched_file.is_removed_file:
            status = "deleted"
        elif patched_file.is_rename:
            status = "renamed"
        else:
            status = "modified"

        added_lines = []
        for hunk in patched_file:
            for line in hunk:
                if line.is_added:
                    added_lines.append((line.target_line_no, line.value.rstrip('\n')))

        files.append(ChangedFile(
            filename=patched_file.path,
            status=status,
            additions=patched_file.added,
            deletions=patched_file.removed,
            patch=str(patched_file),
            added_lines=tuple(added_lines),
        ))

    return files


def changed_filenames(files: Iterable[ChangedFile | str]) -> set[str]:
    """Return the set of filenames in a change set (names pass through)."""
    return {f if isinstance(f, str) else f.filename for f in files}


def build_line_mapping(diff_text: str) -> dict[str, DiffLineMapping]:
    """
    Build a mapping from line numbers to diff positions for all files.

    GitHub only accepts inline comments on lines that appear in the diff
    (added or context lines of the new version).

    Args:
        diff_text: Raw unified diff string

    Returns:
        Dict mapping filename -> DiffLineMapping
    """
    patch_set = PatchSet(diff_text)
    mappings = {}

    for patched_file in patch_set:
        filename = patched_file.path
        mapping = DiffLineMapping(filename=filename)

        position = 0  # Position counter across all hunks

        for hunk in patched_file:
            for line in hunk:
                position += 1
                if (line.is_added or line.is_context) and line.target_line_no is not None:
                    mapping.line_to_position[line.target_line_no] = position
                    mapping.valid_lines.add(line.target_line_no)

        mappings[filename] = mapping

    return mappings


def find_nearest_valid_line(
    mapping: DiffLineMapping,
    target_line: int,
    max_distance: int = 5
) -> int | None:
    """
    Find the nearest line in the diff to *target_line*.

    Returns:
        Nearest valid line number, or None if none within *max_distance*
    """
    if target_line in mapping.valid_lines:
        return target_line

    for distance in range(1, max_distance + 1):
        if target_line + distance in mapping.valid_lines:
            return target_line + distance
        if target_line - distance in mapping.valid_lines:
            return target_line - distance

    return None


def map_findings_to_lines(
    findings: list[Finding],
    mappings: dict[str, DiffLineMapping],
    max_distance: int = 5
) -> tuple[list[tuple[Finding, int]], list[Finding]]:
    """
    Split findings into those that can be posted inline and the rest.

    Returns:
        Tuple of (inline, unmapped)
        - inline: (finding, diff line) pairs, line possibly adjusted
        - unmapped: general findings or lines outside the diff
    """
    inline = []
    unmapped = []

    for finding in findings:
        if finding.file is None or finding.line is None or finding.file not in mappings:
            unmapped.append(finding)
            continue

        valid_line = find_nearest_valid_line(mappings[finding.file], finding.line, max_distance)
        if valid_line is None:
            unmapped.append(finding)
        else:
            inline.append((finding, valid_line))

    return inline, unmapped


# File extensions to skip during review
SKIP_EXTENSIONS = {
    '.md', '.txt', '.rst', '.adoc',           # Docs
    '.lock',                                   # Lock files
    '.png', '.jpg', '.jpeg', '.gif', '.svg', '.ico', '.webp',  # Images
    '.woff', '.woff2', '.ttf', '.eot',        # Fonts
    '.csv', '.json', '.xml', '.yaml', '.yml', '.toml',  # Data
    '.min.js', '.min.css', '.map',            # Build artifacts
    '.exe', '.dll', '.so', '.dylib', '.pyc',  # Binary
    '.zip', '.tar', '.gz', '.pdf',            # Archives/docs
}

SKIP_FILENAMES = {
    'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
    'Pipfile.lock', 'poetry.lock', 'composer.lock',
    'Gemfile.lock', 'Cargo.lock', 'uv.lock',
    '.gitignore', '.gitattributes', '.editorconfig',
    'LICENSE', 'LICENSE.md', 'LICENSE.txt',
}

SKIP_DIRECTORIES = {'node_modules/', 'vendor/', 'dist/', 'build/', '.git/', '__pycache__/', '.venv/'}


def should_review_file(filename: str) -> bool:
    """Check if file should be reviewed based on name/extension."""
    for skip_dir in SKIP_DIRECTORIES:
        if filename.startswith(skip_dir) or f'/{skip_dir}' in filename:
            return False

    basename = filename.split('/')[-1]
    if basename in SKIP_FILENAMES:
        return False

    lowered = filename.lower()
    return not any(lowered.endswith(ext) for ext in SKIP_EXTENSIONS)


def filter_files(files: list[ChangedFile], include_deletions: bool = False) -> list[ChangedFile]:
    """Drop files that shouldn't be sent to reviewers."""
    result = []

    for file in files:
        if not should_review_file(file.filename):
            continue
        if not include_deletions and (file.status == 'deleted' or not file.added_lines):
            continue
        result.append(file)

    return result


def extract_added_code(file: ChangedFile, include_line_numbers: bool = True) -> str:
    """
    Extract only the added lines as a code string.

    Args:
        file: ChangedFile object
        include_line_numbers: If True, prefix each line with its line number
    """
    if include_line_numbers:
        return "\n".join(f"{num:4}| {content}" for num, content in file.added_lines)
    return "\n".join(content for _, content in file.added_lines)
