from __future__ import annotations

from prometheus_client import Counter

composites_rendered = Counter("wardrobe_composites_rendered_total", "Slot composites rendered")
composite_cache_hits = Counter("wardrobe_composite_cache_hits_total", "Composite requests served from disk")
items_skipped = Counter("wardrobe_items_skipped_total", "Equipped items left out of a composite")
generations_requested = Counter("wardrobe_generations_total", "Generative renders requested", ["kind"])
generation_fallbacks = Counter("wardrobe_generation_fallbacks_total", "Generative renders that fell back to the base image")
uploads = Counter("wardrobe_uploads_total", "Images uploaded", ["kind"])
