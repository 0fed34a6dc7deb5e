from enum import StrEnum


class ReportVariant(StrEnum):
    flat = 'flat'
    graph = 'graph'
    graph_html = 'graph_html'
