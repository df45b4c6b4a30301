# 数据库层：连接、模型、成绩存储
