from __future__ import annotations

# Appended after login-capable markup. The customer portal emits `signed-in`
# and `signed-out` on sign in/out; reloading lets the gateway re-render the
# page for the new auth state. Guarded so repeated injections register once.
RELOAD_SCRIPT = """<script>
(function () {
  if (window.__fxGuardReload) { return; }
  window.__fxGuardReload = true;
  function reload() { window.location.reload(); }
  document.addEventListener("signed-in", reload);
  document.addEventListener("signed-out", reload);
})();
</script>"""
