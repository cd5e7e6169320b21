"""模型选择与重试控制。

- model_selector: 候选模型探测、固定与退役。
- retry: 按错误分类的有界重试与线性退避。
"""
