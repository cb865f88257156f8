"""puushy: ephemeral single-node file sharing over HTTP.

Uploads are streamed to disk, described in a JSON metadata document and
removed by a periodic sweep once their time-to-live has passed.
"""
