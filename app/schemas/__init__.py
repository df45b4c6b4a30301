# API请求/响应模型
