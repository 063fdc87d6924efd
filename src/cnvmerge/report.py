from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>cnvmerge Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>cnvmerge Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Segments</th><td><code>{{ segments_path }}</code></td></tr>
      <tr><th>Excluded regions</th><td><code>{{ excluded_path or "none" }}</code> ({{ stats.excluded_regions }} regions)</td></tr>
      <tr><th>Reference ploidy</th><td><code>{{ ploidy_path or "none (diploid)" }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Settings</h3>
    <table>
      <tr><th>Minimum call size</th><td>{{ stats.config.minimum_call_size }}</td></tr>
      <tr><th>Span merge</th><td>{{ "on (max " ~ stats.config.maximum_merge_span ~ " bp)" if stats.config.use_span_merge else "off" }}</td></tr>
      <tr><th>Q-score model</th><td>{{ stats.config.qscore_method }}</td></tr>
      <tr><th>Quality filter threshold</th><td>{{ stats.config.quality_filter_threshold }}</td></tr>
      <tr><th>Minimum PASS length</th><td>{{ stats.config.minimum_pass_length }}</td></tr>
    </table>
  </div>
</div>

<h2>Segments</h2>
<table>
  <tr><th>Input segments</th><td>{{ stats.segments_in }}</td></tr>
  <tr><th>Consolidated segments</th><td>{{ stats.segments_out }}</td></tr>
  <tr><th>Bins</th><td>{{ stats.bins_total }}</td></tr>
  {% for name, n in stats.filters.items() %}
  <tr><th>FILTER {{ name }}</th><td>{{ n }}</td></tr>
  {% endfor %}
  {% for name, n in stats.cnv_types.items() %}
  <tr><th>{{ name }}</th><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h3>Per chromosome</h3>
<table>
  <tr><th>Chromosome</th><th>In</th><th>Out</th></tr>
  {% for chrom, c in stats.per_chromosome.items() %}
  <tr><td>{{ chrom }}</td><td>{{ c.segments_in }}</td><td>{{ c.segments_out }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Call types</h3>
    <img src="{{ plots.cnv_types }}" alt="call type counts">
  </div>
  <div class="card">
    <h3>Q-scores</h3>
    <img src="{{ plots.qscore_hist }}" alt="q-score histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Segment lengths</h3>
    <img src="{{ plots.length_hist }}" alt="segment length histogram">
  </div>
  {% if plots.coverage %}
  <div class="card">
    <h3>Coverage</h3>
    <img src="{{ plots.coverage }}" alt="normalized coverage">
  </div>
  {% endif %}
</div>

{% if top_segments %}
<h2>Largest calls</h2>
<table>
  <tr><th>ID</th><th>QUAL</th><th>FILTER</th><th>CN</th><th>Bins</th></tr>
  {% for r in top_segments %}
  <tr><td><code>{{ r.id }}</code></td><td>{{ r.qual }}</td><td>{{ r.filter }}</td><td>{{ r.format.CN }}</td><td>{{ r.format.BC }}</td></tr>
  {% endfor %}
</table>
{% endif %}

<h2>Outputs</h2>
<ul>
  <li><code>segments.json</code> (consolidated segments and record fields)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Segments shorter than the minimum call size are absorbed into the neighbour with the higher q-score; ties go to the upstream neighbour.</li>
  <li>Segments are never merged across an excluded region or a chromosome boundary.</li>
  <li>Q-scores are advisory confidence values, not probabilities of a correct copy number.</li>
</ul>

<hr>
<p class="small">cnvmerge {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    stats: Dict[str, Any],
    records: List[Dict[str, Any]],
    segments_path: str,
    excluded_path: Optional[str],
    ploidy_path: Optional[str],
    plots: Dict[str, str],
    max_rows: int = 25,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    top = sorted(records, key=lambda r: r["format"]["BC"], reverse=True)[:max_rows]

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        stats=stats,
        segments_path=segments_path,
        excluded_path=excluded_path,
        ploidy_path=ploidy_path,
        plots=plots,
        top_segments=top,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
