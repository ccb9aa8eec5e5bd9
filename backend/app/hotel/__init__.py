"""
app/hotel/__init__.py

酒店领域静态数据：套餐目录、收入分类
"""
