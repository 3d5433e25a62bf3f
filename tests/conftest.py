import pytest

from diff_parser import parse_diff

# @@ -1699,7 +1699,7 @@: three context lines, one replacement, three context lines
NULL_CHECK_DIFF = """diff --git a/src/main/java/Auth.java b/src/main/java/Auth.java
index 1111111..2222222 100644
--- a/src/main/java/Auth.java
+++ b/src/main/java/Auth.java
@@ -1699,7 +1699,7 @@ public class Auth {
     public Token issue(Context context) {
         Headers authHeaders = context.headers();
         return tokenFactory.create(
-            context.getImmutable(), authHeaders);
+            context.getImm(), null);
     }

     private void audit() {
"""

# @@ -10,3 +10,4 @@: one context line, then the only addition
CONSOLE_DIFF = """diff --git a/web/app.js b/web/app.js
index 3333333..4444444 100644
--- a/web/app.js
+++ b/web/app.js
@@ -10,3 +10,4 @@ function boot() {
 function start() {
+  console.log("start");
   init();
   render();
"""

# Context lines spelled with their leading space, as git emits them
MULTI_FILE_DIFF = "\n".join(
    [
        "diff --git a/app/service.py b/app/service.py",
        "index 5555555..6666666 100644",
        "--- a/app/service.py",
        "+++ b/app/service.py",
        "@@ -1,6 +1,7 @@",
        " import logging",
        "+import os",
        " ",
        " logger = logging.getLogger(__name__)",
        " ",
        "-def run():",
        "+def run(env=None):",
        "     return 1",
        "@@ -20,3 +21,4 @@ def stop():",
        "     flush()",
        "-    close()",
        "+    close(force=True)",
        '+    logger.info("stopped")',
        "     return 0",
        "diff --git a/app/new_module.py b/app/new_module.py",
        "new file mode 100644",
        "index 0000000..7777777",
        "--- /dev/null",
        "+++ b/app/new_module.py",
        "@@ -0,0 +1,3 @@",
        "+def helper(value):",
        '+    token = os.environ.get("API_TOKEN")',
        "+    return value * 2",
        "diff --git a/app/legacy.py b/app/legacy.py",
        "deleted file mode 100644",
        "index 8888888..0000000",
        "--- a/app/legacy.py",
        "+++ /dev/null",
        "@@ -1,2 +0,0 @@",
        "-def old():",
        "-    pass",
        "diff --git a/docs/README.md b/docs/README.md",
        "index 9999999..aaaaaaa 100644",
        "--- a/docs/README.md",
        "+++ b/docs/README.md",
        "@@ -3,2 +3,3 @@",
        " ## Usage",
        "+Run `make review`.",
        " ",
    ]
) + "\n"


@pytest.fixture
def null_check_files():
    return parse_diff(NULL_CHECK_DIFF)


@pytest.fixture
def console_files():
    return parse_diff(CONSOLE_DIFF)


@pytest.fixture
def multi_files():
    return parse_diff(MULTI_FILE_DIFF)
