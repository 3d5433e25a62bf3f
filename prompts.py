"""Prompt templates for the issue-discovery and duplicate cross-check calls."""

# =============================================================================
# SHARED PREAMBLE
# =============================================================================

_SEVERITY_GUIDE = (
    "Severity definitions (use these exactly):\n"
    "- critical: Exploitable or crashing in production"
    " (data breach, RCE, data loss, auth bypass, certain crash)\n"
    "- moderate: Will cause bugs under normal use, or a real maintainability"
    " problem\n"
    "- minor: Nit, stylistic preference, minor improvement\n"
)

_CONFIDENCE = (
    "Only report issues you are CONFIDENT about. "
    "Do NOT speculate or report theoretical issues "
    "that require unlikely conditions.\n"
)

_OUTPUT_RULES = (
    "Respond with ONLY valid JSON. No markdown, no explanation, no extra text.\n"
)


# =============================================================================
# DISCOVERY: find issues, do NOT compute line numbers
# =============================================================================

DISCOVERY_PROMPT = (
    "You are an expert code reviewer. "
    "Review this pull request diff for bugs, security and quality issues.\n"
    "\n"
    "Focus on added lines (prefixed with '+'). "
    "Do NOT flag pre-existing code unless the change introduces a new risk.\n"
    "\n"
    "LINE NUMBERS: do NOT try to work out line numbers in the file. "
    "For every issue copy the offending line VERBATIM from the diff "
    "(without the leading '+' or space) into \"code_snippet\". "
    "Pick a distinctive line, never a lone brace or 'return;'. "
    "\"diff_line\" is optional: the position of that line counted from "
    "the top of the diff below.\n"
    "\n"
    + _SEVERITY_GUIDE
    + "\n"
    + _CONFIDENCE
    + "\n"
    "```diff\n"
    "{diff}\n"
    "```\n"
    "\n" + _OUTPUT_RULES + "\n"
    "Required format:\n"
    '{{"issues":[{{"file":"path/in/repo.py","code_snippet":"exact line",'
    '"diff_line":12,"severity":"critical|moderate|minor",'
    '"title":"short title","message":"what is wrong",'
    '"recommendation":"how to fix","codeExample":"fixed code",'
    '"effort":"15 min","impact":"why it matters",'
    '"priority":"High|Medium|Low"}}],'
    '"nextSteps":[],"verdict":"REQUEST CHANGES|APPROVE WITH MINOR CHANGES"}}\n'
    "\n"
    'If no issues found, return: {{"issues":[],"nextSteps":[],'
    '"verdict":"APPROVE WITH MINOR CHANGES"}}\n'
)


# =============================================================================
# CROSS-CHECK: drop issues already raised in earlier review rounds
# =============================================================================

CROSS_CHECK_PROMPT = (
    "You are de-duplicating code review comments.\n"
    "\n"
    "NEW ISSUES were found in the latest review round; each has an \"id\", "
    "a file and a line. EXISTING COMMENTS are already on the pull request.\n"
    "A new issue is a DUPLICATE when an existing comment on the same file, "
    "at the same or a nearby line (within a few lines), raises the same "
    "underlying problem, even if worded differently. "
    "Issues on different files are never duplicates. "
    "When in doubt, keep the issue.\n"
    "\n"
    "NEW ISSUES:\n"
    "```json\n"
    "{new_issues}\n"
    "```\n"
    "\n"
    "EXISTING COMMENTS:\n"
    "```json\n"
    "{existing_comments}\n"
    "```\n"
    "\n" + _OUTPUT_RULES + "\n"
    "Required format:\n"
    '{{"keep_ids":[0,2],'
    '"duplicates":[{{"id":1,"reason":"same null check raised at line 40"}}]}}\n'
)
