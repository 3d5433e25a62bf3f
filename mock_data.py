"""Mock inputs and responses for running without API calls."""

MOCK_DIFF = """diff --git a/app/users.py b/app/users.py
index 3b18e51..a9c4f2d 100644
--- a/app/users.py
+++ b/app/users.py
@@ -10,7 +10,9 @@ from app.db import get_connection

 def find_user(username):
     conn = get_connection()
-    cursor = conn.execute("SELECT * FROM users WHERE name = ?", (username,))
+    query = f"SELECT * FROM users WHERE name = '{username}'"
+    cursor = conn.execute(query)
+    print("looking up", username)
     row = cursor.fetchone()
     return row

@@ -40,3 +42,5 @@ def delete_user(user_id):
     conn = get_connection()
     conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
+    conn.commit()
+    return True

"""

# Shaped like a real Gemini response that hit the output limit mid-issue
MOCK_DISCOVERY_RESPONSE = r"""Here is my review of the changes:
```json
{
  "issues": [
    {
      "file": "app/users.py",
      "code_snippet": "query = f\"SELECT * FROM users WHERE name = '{username}'\"",
      "diff_line": 9,
      "severity": "critical",
      "title": "SQL injection in find_user",
      "message": "The username is interpolated straight into the SQL string.",
      "recommendation": "Keep the parameterised query and pass username as a bound value.",
      "codeExample": "cursor = conn.execute(\"SELECT * FROM users WHERE name = ?\", (username,))",
      "priority": "High"
    },
    {
      "file": "app/users.py",
      "code_snippet": "print(\"looking up\", username)",
      "diff_line": 11,
      "severity": "low",
      "title": "Debug print left in code",
      "message": "The print statement leaks usernames to stdout.",
      "recommendation": "Use the logging module instead of print.",
      "priority": "Low"
    },
    {
      "file": "app/users.py",
      "code_snippet": "conn.commit()",
      "severity": "moderate",
      "title": "Commit without error handl"""

MOCK_EXISTING_COMMENTS = [
    {
        "file": "app/users.py",
        "line": 15,
        "body": (
            "## 🟢 Minor: Debug print left in code\n\n"
            "The print statement leaks usernames to stdout.\n\n"
            "**Recommendation:**\nUse the logging module instead of print."
        ),
        "author": "hunkpin-bot",
    },
    {
        "file": None,
        "line": None,
        "body": "Thanks, will take another look after the fixes.",
        "author": "octocat",
    },
]

MOCK_CROSS_CHECK_RESPONSE = """```json
{"keep_ids": [0], "duplicates": [{"id": 1, "reason": "Debug print already flagged at line 15"}]}
```"""
