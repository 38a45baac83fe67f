# _FastAPI.py
# Renders the HTML shell for the web UI. Panels arrive as server-rendered region HTML.
import html
import json
from typing import Optional, Sequence

from _config import SERVICES

TITLES = {
    "sabnzbd": "SABnzbd",
    "sonarr": "Sonarr",
    "radarr": "Radarr",
    "tautulli": "Tautulli",
    "overseerr": "Overseerr",
    "prowlarr": "Prowlarr",
    "unraid": "Unraid",
}

PANEL_REFRESH_MS = 1000
BADGE_REFRESH_MS = 5000


def _nav(order: Sequence[str], active: Optional[str]) -> str:
    out = []
    for s in order:
        cls = "tab active" if s == active else "tab"
        out.append(
            f'<button class="{cls}" data-service="{html.escape(s)}">'
            f'{html.escape(TITLES.get(s, s))}<span class="badge" id="badge-{html.escape(s)}"></span></button>'
        )
    return "".join(out)


def get_index_html(order: Sequence[str], active: Optional[str] = None, dark_mode: bool = False) -> str:
    boot = json.dumps({
        "order": list(order), "active": active, "services": list(SERVICES), "titles": TITLES,
        "panelMs": PANEL_REFRESH_MS, "badgeMs": BADGE_REFRESH_MS,
    })
    body_cls = "dark" if dark_mode else ""
    empty = "" if order else '<div class="empty">No services configured. Open Settings to add one.</div>'
    return (
        _HEAD
        + f'<body class="{body_cls}"><header><h1>Home Server Companion</h1>'
        + '<button id="settings-btn" class="tab">Settings</button></header>'
        + f'<nav id="nav">{_nav(order, active)}</nav>'
        + '<main><section id="toolbar" class="toolbar"></section>'
        + f'<section id="panel" class="card">{empty}</section>'
        + '<section id="settings" class="card hidden"></section></main>'
        + '<div id="notice" class="hidden"></div>'
        + f"<script>const BOOT = {boot};</script>"
        + _SCRIPT
        + "</body></html>"
    )


_HEAD = r"""<!doctype html><html><head>
<meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1">
<title>Home Server Companion</title>
<style>
  :root{
    --bg:#f4f5f8; --panel:#fff; --muted:#5b6472; --fg:#14161b; --accent:#7c5cff;
    --ok:#19c37d; --warn:#f0a020; --danger:#ff4d4f; --border:#e2e4ea;
  }
  body.dark{ --bg:#000; --panel:#0b0b0f; --muted:#9aa4b2; --fg:#f2f4f8; --border:#1a1a24; }
  *{box-sizing:border-box}
  body{margin:0;background:var(--bg);color:var(--fg);font:14px/1.5 ui-sans-serif,system-ui,Segoe UI,Roboto}
  header{display:flex;justify-content:space-between;align-items:center;padding:12px 16px}
  h1{font-size:18px;margin:0}
  nav{display:flex;gap:6px;padding:0 16px}
  .tab{background:var(--panel);color:var(--fg);border:1px solid var(--border);border-radius:10px;padding:6px 12px;cursor:pointer}
  .tab.active{border-color:var(--accent);box-shadow:0 0 0 2px #7c5cff44}
  .badge{margin-left:6px;background:var(--accent);color:#fff;border-radius:8px;padding:0 6px;font-size:11px}
  .badge:empty{display:none}
  main{padding:16px}
  .card{background:var(--panel);border:1px solid var(--border);border-radius:14px;padding:14px}
  .hidden{display:none}
  .region{display:flex;flex-direction:column;gap:6px;margin-bottom:14px}
  .item,.status{display:flex;flex-wrap:wrap;gap:8px;align-items:center;padding:8px;border:1px solid var(--border);border-radius:10px}
  .group{display:flex;flex-direction:column;gap:6px}
  .date-header{font-weight:600;color:var(--muted)}
  .empty{color:var(--muted);padding:8px}
  .title{font-weight:600}
  .progress{flex-basis:100%;height:6px;background:var(--border);border-radius:3px}
  .progress .fill{height:100%;background:var(--accent);border-radius:3px}
  .poster{width:40px;height:60px;object-fit:cover;border-radius:6px}
  .dot{width:8px;height:8px;border-radius:50%;display:inline-block}
  .dot.downloaded{background:var(--ok)} .dot.available{background:var(--accent)}
  .dot.missing{background:var(--danger)} .dot.upcoming{background:var(--muted)}
  .failed,.attention{border-color:var(--danger)} .warn{color:var(--warn)}
  .error-banner{background:var(--danger);color:#fff;padding:8px;border-radius:10px;margin-bottom:10px}
  .act{background:none;border:1px solid var(--border);border-radius:8px;color:var(--fg);cursor:pointer}
  .toolbar{display:flex;flex-wrap:wrap;gap:6px;align-items:center;margin-bottom:10px}
  .toolbar:empty{display:none}
  .toolbar select,.toolbar input{width:auto}
  .pause-menu{display:inline-flex;gap:4px}
  .update-badge{background:var(--warn);color:#fff;border-radius:6px;padding:0 6px;font-size:11px}
  .state-badge{border-radius:6px;padding:0 6px;font-size:11px;color:#fff;background:var(--ok)}
  .disabled .state-badge{background:var(--muted)} .failing .state-badge,.countdown{background:var(--danger);color:#fff}
  .vip.warning{color:var(--warn)} .vip.expired{color:var(--danger)}
  .stats-grid{display:grid;grid-template-columns:repeat(4,1fr)}
  .stat-card{display:flex;flex-direction:column} .stat-value{font-weight:600} .stat-label{color:var(--muted);font-size:12px}
  .stats-table{width:100%;border-collapse:collapse} .stats-table td,.stats-table th{text-align:left;padding:2px 6px}
  #notice{position:fixed;bottom:16px;right:16px;background:var(--danger);color:#fff;padding:10px 14px;border-radius:10px}
  label{display:block;margin:6px 0 2px;color:var(--muted)}
  input{width:100%;padding:6px;border:1px solid var(--border);border-radius:8px;background:var(--bg);color:var(--fg)}
</style></head>
"""

_SCRIPT = r"""<script>
  let active = BOOT.active;
  let panelTimer = null;
  let shownControls = null;
  let searchTimer = null;

  async function api(method, url, body){
    const r = await fetch(url, {method, headers:{'Content-Type':'application/json'}, body: body ? JSON.stringify(body) : undefined});
    let js = {};
    try { js = await r.json(); } catch(e) {}
    return {status: r.status, js};
  }

  function notice(msg){
    const n = document.getElementById('notice');
    n.textContent = msg; n.classList.remove('hidden');
    setTimeout(() => n.classList.add('hidden'), 4000);
  }

  function paintControls(html){
    const bar = document.getElementById('toolbar');
    // never rebuild under the cursor of a focused search box
    if (html === shownControls || bar.contains(document.activeElement)) return;
    bar.innerHTML = html;
    shownControls = html;
  }

  function paint(snap){
    if (!snap || snap.service !== active) return;
    document.getElementById('panel').innerHTML = snap.html || '';
    paintControls(snap.controls || '');
  }

  async function openPanel(service){
    active = service;
    document.querySelectorAll('#nav .tab').forEach(b => b.classList.toggle('active', b.dataset.service === service));
    document.getElementById('settings').classList.add('hidden');
    document.getElementById('panel').classList.remove('hidden');
    document.getElementById('toolbar').classList.remove('hidden');
    if (panelTimer) clearInterval(panelTimer);
    const {status, js} = await api('POST', `/api/panel/${service}/open`);
    if (status !== 200) { notice(js.detail || 'Could not open panel'); return; }
    paint(js);
    panelTimer = setInterval(async () => {
      const {js} = await api('GET', `/api/panel/${active}`);
      paint(js);
    }, BOOT.panelMs);
  }

  function actionUrl(btn){
    const id = encodeURIComponent(btn.dataset.id), op = btn.dataset.op;
    switch (btn.dataset.action){
      case 'sab-pause': return ['/api/sabnzbd/pause', btn.dataset.minutes ? {minutes: Number(btn.dataset.minutes)} : {}];
      case 'sab-resume': return ['/api/sabnzbd/resume', {}];
      case 'sab-queue-delete': return [`/api/sabnzbd/queue/${id}/delete`, {}];
      case 'sab-history-delete': return [`/api/sabnzbd/history/${id}/delete`, {}];
      case 'sonarr-queue-delete': return [`/api/sonarr/queue/${id}/delete`, {blocklist: btn.dataset.blocklist === 'true'}];
      case 'radarr-queue-delete': return [`/api/radarr/queue/${id}/delete`, {blocklist: btn.dataset.blocklist === 'true'}];
      case 'tautulli-terminate': return [`/api/tautulli/sessions/${id}/terminate`, {}];
      case 'overseerr-approve': return [`/api/overseerr/requests/${id}/approve`, {}];
      case 'overseerr-decline': return [`/api/overseerr/requests/${id}/decline`, {}];
      case 'overseerr-request': return ['/api/overseerr/request', {mediaId: Number(btn.dataset.id), mediaType: btn.dataset.type}];
      case 'unraid-container': return [`/api/unraid/containers/${id}/${op}`, {}];
      case 'unraid-vm': return [`/api/unraid/vms/${id}/${op}`, {}];
    }
    return [null, null];
  }

  async function runAction(btn){
    const [url, body] = actionUrl(btn);
    if (!url) return;
    let res = await api('POST', url, body);
    if (res.status === 409){
      if (!confirm(res.js.confirm || btn.title)) return;
      const extra = btn.dataset.action === 'tautulli-terminate' ? {reason: prompt('Reason', 'Terminated by Admin') || ''} : {};
      res = await api('POST', url, {...body, ...extra, confirmed: true});
    }
    if (res.status !== 200) notice(res.js.message || res.js.error || res.js.detail || 'Action failed');
    const {js} = await api('GET', `/api/panel/${active}`);
    paint(js);
  }

  async function control(url, body){
    const {status, js} = await api('POST', url, body);
    if (status !== 200) { notice(js.error || js.detail || 'Request failed'); return; }
    shownControls = null;
    paint(js);
  }

  document.getElementById('nav').addEventListener('click', e => {
    const b = e.target.closest('.tab'); if (b) openPanel(b.dataset.service);
  });
  document.getElementById('panel').addEventListener('click', e => {
    const b = e.target.closest('.act'); if (b) { runAction(b); return; }
    const s = e.target.closest('[data-key]');
    if (active === 'tautulli' && s) api('POST', `/api/panel/tautulli/expand/${encodeURIComponent(s.dataset.key)}`).then(r => paint(r.js));
  });

  const toolbar = document.getElementById('toolbar');
  toolbar.addEventListener('click', e => {
    const t = e.target.closest('[data-ui="unraid-tab"]');
    if (t) control('/api/panel/unraid/tab', {tab: t.dataset.tab});
  });
  toolbar.addEventListener('change', e => {
    const ui = e.target.dataset.ui;
    if (ui === 'unraid-sort') control('/api/panel/unraid/docker', {sort: e.target.value});
    if (ui === 'overseerr-filter') control('/api/panel/overseerr/filter', {filter: e.target.value});
  });
  toolbar.addEventListener('input', e => {
    if (e.target.dataset.ui !== 'unraid-search') return;
    clearTimeout(searchTimer);
    const value = e.target.value;
    searchTimer = setTimeout(async () => {
      const {js} = await api('POST', '/api/panel/unraid/docker', {search: value});
      paint(js);
    }, 200);
  });
  toolbar.addEventListener('keydown', e => {
    if (e.key === 'Enter' && e.target.dataset.ui === 'overseerr-search') control('/api/panel/overseerr/search', {query: e.target.value});
  });

  function field(label, key, value){
    const frag = document.createDocumentFragment();
    const l = document.createElement('label'); l.textContent = label;
    const i = document.createElement('input'); i.dataset.k = key; i.value = value || '';
    frag.append(l, i);
    return frag;
  }

  async function loadSettings(){
    const {js} = await api('GET', '/api/config');
    const box = document.getElementById('settings');
    box.replaceChildren();
    BOOT.services.forEach(s => {
      const h = document.createElement('h3'); h.textContent = BOOT.titles[s] || s;
      const test = document.createElement('button'); test.className = 'tab'; test.dataset.test = s; test.textContent = 'Test';
      const out = document.createElement('span'); out.id = 'test-' + s;
      box.append(h, field('URL', s + 'Url', js[s + 'Url']), field('API key', s + 'Key', js[s + 'Key']), test, ' ', out);
    });
    const p = document.createElement('p');
    const save = document.createElement('button'); save.className = 'tab'; save.id = 'save'; save.textContent = 'Save';
    p.append(save); box.append(p);
    box.classList.remove('hidden');
    document.getElementById('panel').classList.add('hidden');
    document.getElementById('toolbar').classList.add('hidden');
    if (panelTimer) clearInterval(panelTimer);
  }

  document.getElementById('settings-btn').addEventListener('click', loadSettings);
  document.getElementById('settings').addEventListener('click', async e => {
    const box = document.getElementById('settings');
    const val = k => (box.querySelector(`[data-k="${k}"]`) || {}).value || '';
    if (e.target.dataset.test){
      const s = e.target.dataset.test;
      const {js} = await api('POST', `/api/services/${s}/test`, {url: val(s+'Url'), key: val(s+'Key')});
      document.getElementById('test-'+s).textContent = js.message || '';
    }
    if (e.target.id === 'save'){
      const cfg = {};
      box.querySelectorAll('[data-k]').forEach(i => cfg[i.dataset.k] = i.value);
      const {status, js} = await api('POST', '/api/config', cfg);
      if (status !== 200) notice(js.error || 'Save failed'); else location.reload();
    }
  });

  async function badges(){
    const {js} = await api('GET', '/api/badges');
    Object.entries(js.badges || {}).forEach(([s, n]) => {
      const el = document.getElementById('badge-'+s); if (el) el.textContent = n;
    });
  }

  setInterval(badges, BOOT.badgeMs);
  if (active) openPanel(active);
</script>
"""
